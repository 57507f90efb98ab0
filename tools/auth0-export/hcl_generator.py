"""
hcl_generator: Render auth0_client / auth0_client_credentials resources as Terraform HCL.

Attributes are written by small emitter functions applied in a fixed order per
application type, so the output is byte-identical for identical input and
matches the layout of hand-written client modules. Machine-to-machine clients
also get their first-party flags and URL lists, which hand-written M2M modules
usually leave out.

Only Reference values built by terraform_mapper are written unquoted; every
other string is quoted, even one that looks like ``var.x``.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from terraform_mapper import (
    APP_TYPE_M2M,
    MappingOptions,
    Reference,
    TerraformClientAttributes,
    TerraformResource,
    make_unique_names,
    map_client_credentials,
    map_client_to_terraform,
    needs_credentials_resource,
)

REFERENCE_PREFIXES = ("var.", "local.", "data.")
DEFAULT_INDENT = "  "

Emitter = Callable[[TerraformClientAttributes, str], List[str]]


# --- HCL values ---

def hcl_string(value: str) -> str:
    """Escape and quote a string for HCL."""
    escaped = (value.replace('\\', '\\\\').replace('"', '\\"')
               .replace('\n', '\\n').replace('\r', '\\r').replace('\t', '\\t'))
    return f'"{escaped}"'


def is_reference(value: Any) -> bool:
    return isinstance(value, Reference) and value.startswith(REFERENCE_PREFIXES)


def hcl_value(value: Any, indent: str = DEFAULT_INDENT, current_indent: str = "") -> str:
    """Convert a Python value to HCL; lists are written one item per line."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return str(value) if is_reference(value) else hcl_string(value)
    if isinstance(value, list):
        if not value:
            return "[]"
        inner = current_indent + indent
        items = [f"{inner}{hcl_value(v, indent, inner)}," for v in value]
        return "[\n" + "\n".join(items) + f"\n{current_indent}]"
    return hcl_string(str(value))


def render_attribute(name: str, value: Any, indent: str = DEFAULT_INDENT,
                     current_indent: str = DEFAULT_INDENT) -> str:
    return f"{current_indent}{name} = {hcl_value(value, indent, current_indent)}"


def render_block(name: str, content: Dict[str, Any], indent: str = DEFAULT_INDENT,
                 current_indent: str = DEFAULT_INDENT) -> List[str]:
    """Render a nested block such as ``jwt_configuration { ... }``; empty blocks render nothing."""
    entries = [(k, v) for k, v in content.items() if v is not None]
    if not entries:
        return []
    nested = current_indent + indent
    lines = [f"{current_indent}{name} {{"]
    lines.extend(render_attribute(k, v, indent, nested) for k, v in entries)
    lines.append(f"{current_indent}}}")
    return lines


def _tidy(lines: List[str]) -> str:
    text = "\n".join(lines)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.replace('\n\n}', '\n}')


# --- Attribute emitters ---

def _attr(name: str) -> Emitter:
    def emit(attrs: TerraformClientAttributes, indent: str) -> List[str]:
        value = getattr(attrs, name)
        if value is None:
            return []
        return [render_attribute(name, value, indent, indent)]
    return emit


def _group(*emitters: Emitter, leading_blank: bool = True) -> Emitter:
    """Run emitters as one visual group, separated from the previous one by a blank line."""
    def emit(attrs: TerraformClientAttributes, indent: str) -> List[str]:
        lines: List[str] = []
        for e in emitters:
            lines.extend(e(attrs, indent))
        if lines and leading_blank:
            lines.insert(0, "")
        return lines
    return emit


def _nested(name: str) -> Emitter:
    def emit(attrs: TerraformClientAttributes, indent: str) -> List[str]:
        value = getattr(attrs, name)
        if value is None:
            return []
        lines = render_block(name, value.to_dict(), indent, indent)
        return [""] + lines if lines else []
    return emit


def _blank(attrs: TerraformClientAttributes, indent: str) -> List[str]:
    return [""]


_first_party_flags = _group(_attr("is_first_party"), _attr("oidc_conformant"),
                            leading_blank=False)
_url_lists = _group(_attr("callbacks"), _attr("web_origins"),
                    _attr("allowed_logout_urls"), _attr("allowed_origins"))

COMMON_TAIL: List[Emitter] = [
    _group(_attr("cross_origin_auth"), _attr("sso_disabled")),
    _nested("jwt_configuration"),
    _nested("refresh_token"),
    _group(_attr("organization_usage"), _attr("organization_require_behavior")),
    _group(_attr("logo_uri"), _attr("initiate_login_uri")),
]

M2M_EMITTERS: List[Emitter] = [
    _attr("app_type"),
    _attr("description"),
    _attr("grant_types"),
    _attr("name"),
    _first_party_flags,
    _url_lists,
] + COMMON_TAIL

INTERACTIVE_EMITTERS: List[Emitter] = [
    _attr("name"),
    _attr("description"),
    _blank,
    _attr("app_type"),
    _first_party_flags,
    _url_lists,
    _group(_attr("grant_types")),
] + COMMON_TAIL


def emitters_for(attrs: TerraformClientAttributes) -> List[Emitter]:
    return M2M_EMITTERS if attrs.app_type == APP_TYPE_M2M else INTERACTIVE_EMITTERS


# --- Resource rendering ---

def generate_client_hcl(resource: TerraformResource, include_comments: bool = True,
                        indent: str = DEFAULT_INDENT) -> str:
    """Render an auth0_client resource block."""
    attrs = resource.attributes
    lines = []
    if include_comments and attrs.description:
        lines.append(f"# {attrs.name}")
    lines.append(f'resource "{resource.resource_type}" "{resource.resource_name}" {{')
    for emit in emitters_for(attrs):
        lines.extend(emit(attrs, indent))
    lines.append("}")
    return _tidy(lines)


def generate_client_credentials_hcl(resource: TerraformResource,
                                    indent: str = DEFAULT_INDENT) -> str:
    attrs = resource.attributes
    return "\n".join([
        f'resource "{resource.resource_type}" "{resource.resource_name}" {{',
        f"{indent}authentication_method = {hcl_string(attrs.authentication_method)}",
        f"{indent}client_id             = {attrs.client_id_ref}",
        "}",
    ])


def _render_client(client: Dict[str, Any], resource: TerraformResource,
                   include_comments: bool, indent: str) -> str:
    parts = [generate_client_hcl(resource, include_comments, indent)]
    if needs_credentials_resource(client):
        auth_method = client.get("token_endpoint_auth_method") or "client_secret_post"
        credentials = map_client_credentials(resource.resource_name, auth_method)
        parts.append("")
        parts.append(generate_client_credentials_hcl(credentials, indent))
    return "\n".join(parts)


def generate_complete_client_hcl(client: Dict[str, Any],
                                 options: Optional[MappingOptions] = None,
                                 include_comments: bool = True,
                                 indent: str = DEFAULT_INDENT) -> str:
    """Render the client resource plus its credentials resource when one is needed."""
    resource = map_client_to_terraform(client, options)
    return _render_client(client, resource, include_comments, indent)


def generate_client_hcl_with_header(client: Dict[str, Any],
                                    options: Optional[MappingOptions] = None,
                                    generated_at: Optional[datetime] = None,
                                    include_comments: bool = True,
                                    indent: str = DEFAULT_INDENT) -> str:
    """Complete client HCL preceded by a banner comment, for appending to an existing file."""
    generated_at = generated_at or datetime.now(timezone.utc)
    rule = "# " + "=" * 76
    header = "\n".join([
        "",
        rule,
        f"# {client['name']}",
        f"# Generated by auth0-export on {generated_at.isoformat()}",
        f"# Client ID: {client.get('client_id', '')}",
        rule,
        "",
    ])
    return header + generate_complete_client_hcl(client, options, include_comments, indent)


def generate_clients_hcl(clients: List[Dict[str, Any]],
                         options: Optional[MappingOptions] = None,
                         include_comments: bool = True,
                         indent: str = DEFAULT_INDENT) -> str:
    """Render several clients into one text, de-duplicating colliding resource names."""
    resources = [map_client_to_terraform(c, options) for c in clients]
    unique = make_unique_names([r.resource_name for r in resources])
    parts = []
    for client, resource, name in zip(clients, resources, unique):
        resource.resource_name = name
        parts.append(_render_client(client, resource, include_comments, indent))
    return "\n\n".join(parts)
