"""
Registry v2 protocol engine.

Components, leaf-first: session (signing), error_mapper, challenge, auth,
pagination, listing, manifests, blobs. The Client facade composes them.
"""
