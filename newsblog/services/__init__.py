# Services package.
#
# Each module holds the business rules of one service:
#
#   posts_service    — visibility, pagination, slug/reading time, authorship
#   user_service     — registration, login, token issuance, user events
#   logging_service  — audit log sink and user event subscriptions
#
# Services are plain classes constructed with their storage (ports from
# ``newsblog.stores`` or a ``KeyValueStore``); the router layer builds them
# per request through FastAPI dependencies.
