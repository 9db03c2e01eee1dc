"""Authentication and authorization.

Learn: Three pieces live here, each usable on its own:
1. password → bcrypt hash/verify (the credential verifier)
2. jwt → token issuing and verification, shaping the role claims
3. policy → the authorization engine (pure allow/deny decisions)

dependencies.py glues them into FastAPI Depends() helpers.
"""
