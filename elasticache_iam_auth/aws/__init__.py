"""AWS-facing pieces: identity resolution, request signing, token assembly."""
