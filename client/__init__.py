"""
client -- Python client for the Folio auth API.

FolioClient wraps the HTTP endpoints with a requests.Session and holds the
bearer token. SessionHeartbeat keeps the server-side session alive while a
client is logged in and drops the local token once the server answers 401.

The client never imports from api/ or auth/; it only speaks HTTP.
"""
