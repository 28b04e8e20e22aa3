"""Data models: native RBAC, management.cattle.io resources and admission reviews."""
