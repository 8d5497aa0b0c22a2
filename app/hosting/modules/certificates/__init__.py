"""
Custom TLS certificates (team-scoped).

Uploaded PEMs are mirrored into the reverse proxy container as
<id>-cert.pem / <id>-key.pem; the private key is stored encrypted.
"""
