# Services package.
#
# Each module exposes async functions that encapsulate business logic and
# database access for one aggregate:
#
#   article_query   : filter predicates + pagination parsing for listings
#   article_service : article CRUD, feed, favorites
#   comment_service : comments on an article
#   profile_service : public profiles and follows
#   tag_service     : most used tags
#   user_service    : registration, login, account updates
#
# All service functions accept an AsyncSession as their first argument so
# that the router layer controls the transaction boundary via ``get_db``.
