from pydantic import BaseModel, ConfigDict, Field

# Required text fields are declared optional here: the service layer reports
# blank values as field-scoped "can't be blank" errors.


# --- User ---

class UserCreate(BaseModel):
    username: str | None = Field(None, max_length=100)
    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=128)


class UserLogin(BaseModel):
    email: str | None = None
    password: str | None = None


class UserUpdate(BaseModel):
    username: str | None = Field(None, max_length=100)
    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=128)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class NewUserRequest(BaseModel):
    user: UserCreate


class LoginRequest(BaseModel):
    user: UserLogin


class UpdateUserRequest(BaseModel):
    user: UserUpdate


# --- Article ---

class ArticleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(None, max_length=300)
    description: str | None = None
    body: str | None = None
    tag_list: list[str] = Field(default_factory=list, alias="tagList")


class ArticleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(None, max_length=300)
    description: str | None = None
    body: str | None = None
    tag_list: list[str] | None = Field(None, alias="tagList")


class NewArticleRequest(BaseModel):
    article: ArticleCreate


class UpdateArticleRequest(BaseModel):
    article: ArticleUpdate


# --- Comment ---

class CommentCreate(BaseModel):
    body: str | None = None


class NewCommentRequest(BaseModel):
    comment: CommentCreate
