"""Authentication module (JWT bearer tokens).

Services:
    - TokenVerifier: validates and issues HS256 bearer tokens.
"""
