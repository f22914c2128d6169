"""
Storage backend implementations.

Each backend is imported from its own submodule so the S3 dependency is
only needed when the S3 provider is used:

    from vaultshift.storage.backends.local import LocalStorageProvider
    from vaultshift.storage.backends.s3 import S3StorageProvider
"""
