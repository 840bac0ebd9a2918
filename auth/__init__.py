"""auth/ -- Authentication and session lifecycle package for Folio.

Layer rule: auth/ imports only core/ (configuration), stdlib and third-party
libraries. It does NOT import from api/ or client/.
api/ imports from auth/, not the other way around.
"""
