"""consultflow.integrations — external collaborator gateways.

Services reach external stores through a gateway in this package, never
through bare filesystem or HTTP calls.

Current gateways:
  object_storage.ObjectStorage — project-scoped blob storage (LocalFileStorage)
"""
