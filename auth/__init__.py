"""auth/ -- Session credential issuance and validation engine for Tokenward.

Layer rule: auth/ imports only stdlib + third-party libraries (core.config is
referenced for type checking only). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
