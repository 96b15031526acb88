"""
API package - cross-cutting HTTP concerns shared by all blueprints.

Request context (request id, tenant scope) and the error envelope live in
api.middleware.
"""
