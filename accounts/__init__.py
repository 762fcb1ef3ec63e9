"""
accounts -- Account domain: models, validation, persistence, workflows, analytics.

Layer rule: accounts/ never imports from api/. It depends on core/ for
configuration, on auth.tokens for hashing and JWTs, and on media/ for image
storage; those collaborators are injected into AccountService.
"""
