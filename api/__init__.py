"""api/ -- FastAPI HTTP bridge exposing the auth backend to non-Python hosts.

Layer rule: api/ may import from auth/ and core/; nothing imports from api/.
"""
