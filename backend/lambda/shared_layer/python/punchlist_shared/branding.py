"""punchlist_shared.branding — Report branding resolution.

Each field resolves in order: explicit per-request override, then the work
order's branding columns, then the environment defaults, then the built-in
company name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from punchlist_shared.config import DEFAULT_COMPANY_NAME, BrandDefaults

__all__ = ["OVERRIDE_KEYS", "Branding", "resolve_branding"]

OVERRIDE_KEYS = frozenset({
    "company_name",
    "company_tagline",
    "company_address",
    "company_phone",
    "company_logo_url",
    "client_name",
    "client_logo_url",
    "project_name",
})


@dataclass(frozen=True)
class Branding:
    company_name: str
    company_tagline: str = ""
    company_address: str = ""
    company_phone: str = ""
    company_logo_url: str = ""
    client_name: str = ""
    client_logo_url: str = ""
    work_order_code: str = ""
    project_name: str = ""

    @property
    def address_line(self) -> str:
        return " • ".join(part for part in (self.company_address, self.company_phone) if part)


def _first(*values: Any) -> str:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def resolve_branding(
    defaults: BrandDefaults,
    work_order: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Branding:
    wo = work_order or {}
    ov = {k: v for k, v in (overrides or {}).items() if k in OVERRIDE_KEYS}
    return Branding(
        company_name=_first(
            ov.get("company_name"),
            wo.get("company_display_name"),
            defaults.company_name,
            DEFAULT_COMPANY_NAME,
        ),
        company_tagline=_first(ov.get("company_tagline"), defaults.company_tagline),
        company_address=_first(ov.get("company_address"), defaults.company_address),
        company_phone=_first(ov.get("company_phone"), defaults.company_phone),
        company_logo_url=_first(
            ov.get("company_logo_url"),
            wo.get("company_logo_url"),
            defaults.company_logo_url,
        ),
        client_name=_first(ov.get("client_name"), wo.get("client_name")),
        client_logo_url=_first(ov.get("client_logo_url"), wo.get("client_logo_url")),
        work_order_code=_first(wo.get("code")),
        project_name=_first(ov.get("project_name"), wo.get("project_name"), wo.get("project")),
    )
