"""
Request Tenant Context

The value the tenant pipeline produces for one request: which tenant it is
for and where that tenant's store lives.

A new instance is created for every request and attached to that request's
state only. It is immutable, so nothing downstream can repoint a request at a
different store halfway through.
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequestTenantContext:
    tenant_code: str
    db_name: str
    connection_url: str = field(repr=False)
