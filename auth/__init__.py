"""auth/ -- Authentication package for ProfileHub.

Password hashing and JWTs (tokens.py), the FastAPI auth dependencies
(dependencies.py), and the Authlib OAuth registry (oauth.py).

Layer rule: auth/ does NOT import from api/ or media/. It may import core/
for settings and the accounts domain types and errors.
api/ imports from auth/, not the other way around.
"""
