"""
Uploads Module

Upload backends (presigned object storage, client-token blob store, local
disk), startup resolution and upload compensation.
"""
