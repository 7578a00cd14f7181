from .tenants_models import Tenant

__all__ = ["Tenant"]
