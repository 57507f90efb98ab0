"""
terraform_mapper: Map Auth0 application records onto auth0_client Terraform attributes.

Only fields present on the source record are populated; absent optional fields
stay None and are dropped by ``to_dict()``, so nothing is ever emitted as null.
"""

import re
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Union

CLIENT_RESOURCE_TYPE = "auth0_client"
CREDENTIALS_RESOURCE_TYPE = "auth0_client_credentials"

APP_TYPE_SPA = "spa"
APP_TYPE_M2M = "non_interactive"

CREDENTIAL_AUTH_METHODS = {"client_secret_post", "client_secret_basic"}


class Reference(str):
    """A Terraform expression such as ``var.x`` built by the mapper; rendered unquoted."""


def _drop_none(obj: Any) -> Dict[str, Any]:
    result = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        if hasattr(value, "to_dict"):
            value = value.to_dict()
            if not value:
                continue
        result[f.name] = value
    return result


@dataclass
class JwtConfiguration:
    alg: Optional[str] = None
    lifetime_in_seconds: Optional[Union[int, Reference]] = None
    secret_encoded: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(self)


@dataclass
class RefreshTokenConfiguration:
    rotation_type: Optional[str] = None
    expiration_type: Optional[str] = None
    leeway: Optional[int] = None
    token_lifetime: Optional[int] = None
    idle_token_lifetime: Optional[int] = None
    infinite_token_lifetime: Optional[bool] = None
    infinite_idle_token_lifetime: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(self)


@dataclass
class TerraformClientAttributes:
    name: str
    app_type: Optional[str] = None
    description: Optional[str] = None
    callbacks: Optional[List[str]] = None
    allowed_logout_urls: Optional[List[str]] = None
    web_origins: Optional[List[str]] = None
    allowed_origins: Optional[List[str]] = None
    grant_types: Optional[List[str]] = None
    is_first_party: Optional[bool] = None
    oidc_conformant: Optional[bool] = None
    cross_origin_auth: Optional[bool] = None
    sso_disabled: Optional[bool] = None
    jwt_configuration: Optional[JwtConfiguration] = None
    refresh_token: Optional[RefreshTokenConfiguration] = None
    organization_usage: Optional[str] = None
    organization_require_behavior: Optional[str] = None
    logo_uri: Optional[str] = None
    initiate_login_uri: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(self)


@dataclass
class ClientCredentialsAttributes:
    authentication_method: str
    client_id_ref: Reference


@dataclass
class TerraformResource:
    resource_name: str
    resource_type: str
    attributes: Any


@dataclass
class MappingOptions:
    use_variable_for_jwt_lifetime: bool = True
    jwt_lifetime_variable_name: str = "jwt_lifetime_seconds"
    spa_jwt_lifetime_variable_name: str = "spa_jwt_lifetime_seconds"
    resource_name_prefix: Optional[str] = None


# --- Resource names ---

def to_snake_case(value: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to '_' and trim underscores."""
    return re.sub(r'[^a-z0-9]+', '_', value.lower()).strip('_')


def generate_resource_name(client_name: str, prefix: Optional[str] = None) -> str:
    """Convert a client name to a valid Terraform resource label."""
    base_name = to_snake_case(client_name)
    if prefix:
        base_name = f"{prefix}_{base_name}".rstrip('_')
    if base_name and base_name[0].isdigit():
        base_name = '_' + base_name
    return base_name or '_unnamed'


def make_unique_names(names: List[str]) -> List[str]:
    """Suffix repeated resource names with _1, _2, ... in input order."""
    result = []
    seen: Dict[str, int] = {}
    for name in names:
        unique = name
        if name in seen:
            seen[name] += 1
            unique = f"{name}_{seen[name]}"
            while unique in seen:
                seen[name] += 1
                unique = f"{name}_{seen[name]}"
        seen.setdefault(unique, 0)
        result.append(unique)
    return result


# --- Field mapping ---

def _copy_list(record: Dict[str, Any], key: str) -> Optional[List[str]]:
    value = record.get(key)
    if isinstance(value, list) and value:
        return list(value)
    return None


def _copy_str(record: Dict[str, Any], key: str) -> Optional[str]:
    value = record.get(key)
    return value if value else None


def _map_jwt_configuration(client: Dict[str, Any], options: MappingOptions) -> Optional[JwtConfiguration]:
    source = client.get("jwt_configuration")
    if not isinstance(source, dict):
        return None

    jwt = JwtConfiguration(alg=_copy_str(source, "alg"),
                           secret_encoded=source.get("secret_encoded"))
    lifetime = source.get("lifetime_in_seconds")
    if lifetime is not None:
        if options.use_variable_for_jwt_lifetime:
            var_name = (options.spa_jwt_lifetime_variable_name
                        if client.get("app_type") == APP_TYPE_SPA
                        else options.jwt_lifetime_variable_name)
            jwt.lifetime_in_seconds = Reference(f"var.{var_name}")
        else:
            jwt.lifetime_in_seconds = lifetime
    return jwt if jwt.to_dict() else None


def _map_refresh_token(client: Dict[str, Any]) -> Optional[RefreshTokenConfiguration]:
    source = client.get("refresh_token")
    if not isinstance(source, dict):
        return None

    refresh = RefreshTokenConfiguration(
        rotation_type=_copy_str(source, "rotation_type"),
        expiration_type=_copy_str(source, "expiration_type"),
        leeway=source.get("leeway"),
        token_lifetime=source.get("token_lifetime"),
        idle_token_lifetime=source.get("idle_token_lifetime"),
        infinite_token_lifetime=source.get("infinite_token_lifetime"),
        infinite_idle_token_lifetime=source.get("infinite_idle_token_lifetime"),
    )
    return refresh if refresh.to_dict() else None


def map_client_to_terraform(client: Dict[str, Any],
                            options: Optional[MappingOptions] = None) -> TerraformResource:
    """Map an Auth0 application record to an auth0_client resource."""
    options = options or MappingOptions()
    resource_name = generate_resource_name(client["name"], options.resource_name_prefix)

    attributes = TerraformClientAttributes(
        name=client["name"],
        app_type=_copy_str(client, "app_type"),
        description=_copy_str(client, "description"),
        callbacks=_copy_list(client, "callbacks"),
        allowed_logout_urls=_copy_list(client, "allowed_logout_urls"),
        web_origins=_copy_list(client, "web_origins"),
        allowed_origins=_copy_list(client, "allowed_origins"),
        grant_types=_copy_list(client, "grant_types"),
        is_first_party=client.get("is_first_party"),
        oidc_conformant=client.get("oidc_conformant"),
        # API field cross_origin_authentication is cross_origin_auth in the provider
        cross_origin_auth=client.get("cross_origin_authentication"),
        sso_disabled=client.get("sso_disabled"),
        jwt_configuration=_map_jwt_configuration(client, options),
        refresh_token=_map_refresh_token(client),
        organization_usage=_copy_str(client, "organization_usage"),
        organization_require_behavior=_copy_str(client, "organization_require_behavior"),
        logo_uri=_copy_str(client, "logo_uri"),
        initiate_login_uri=_copy_str(client, "initiate_login_uri"),
    )

    return TerraformResource(
        resource_name=resource_name,
        resource_type=CLIENT_RESOURCE_TYPE,
        attributes=attributes,
    )


def needs_credentials_resource(client: Dict[str, Any]) -> bool:
    """M2M applications and secret-based auth methods need auth0_client_credentials."""
    return (
        client.get("app_type") == APP_TYPE_M2M
        or client.get("token_endpoint_auth_method") in CREDENTIAL_AUTH_METHODS
    )


def map_client_credentials(resource_name: str,
                           auth_method: str = "client_secret_post") -> TerraformResource:
    return TerraformResource(
        resource_name=resource_name,
        resource_type=CREDENTIALS_RESOURCE_TYPE,
        attributes=ClientCredentialsAttributes(
            authentication_method=auth_method,
            client_id_ref=Reference(f"{CLIENT_RESOURCE_TYPE}.{resource_name}.id"),
        ),
    )
