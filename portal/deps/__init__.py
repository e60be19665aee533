# Marks `portal.deps` as a package so `from portal.deps.auth import get_principal` resolves.
