"""
Instance settings module.

Scope:
- Aggregated settings listing (settings row, certificates, SSH keys, registries)
- Instance settings update, dashboard domain removal
- Domain conflict and DNS checks before a domain is accepted
"""
