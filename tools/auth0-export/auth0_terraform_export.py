#!/usr/bin/env python3
"""
auth0-terraform-export: Export one Auth0 application as Terraform and open a pull request.

The generated auth0_client (and, when needed, auth0_client_credentials) HCL is
appended to a file in a Terraform repository on a new branch, committed,
pushed and proposed as a PR with the GitHub CLI.

Usage:
    python3 auth0_terraform_export.py --domain tenant.eu.auth0.com --token TOKEN \\
        --client-id abc123 --repo ~/src/terraform-auth0
    python3 auth0_terraform_export.py --client-data app.json --repo ~/src/terraform-auth0 --dry-run
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from auth0_client import Auth0APIError, Auth0Client
from backup_utils import describe_api_error
from git_operations import (
    GitOperationError,
    check_gh_cli,
    create_pr_with_changes,
    generate_branch_name,
    validate_git_repo,
)
from hcl_generator import generate_client_hcl_with_header
from terraform_mapper import MappingOptions, generate_resource_name, needs_credentials_resource

logger = logging.getLogger(__name__)

DEFAULT_TERRAFORM_FILE = "modules/auth0/applications/clients/main.tf"


class ExportValidationError(ValueError):
    """The export request is missing or has conflicting parameters."""


def resolve_client(client: Optional[Auth0Client], client_id: Optional[str],
                   client_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the application record, fetching it by id when no record was given."""
    if client_id and client_data:
        raise ExportValidationError("Provide either client_id or client_data, not both")
    if not client_id and not client_data:
        raise ExportValidationError("Either client_id or client_data is required")

    if client_data is not None:
        if not isinstance(client_data, dict) or not client_data.get("client_id") or not client_data.get("name"):
            raise ExportValidationError("client_data must include at least client_id and name")
        return client_data

    if client is None:
        raise ExportValidationError("A Management API client is required to fetch client_id")
    record = client.get_client(client_id)
    if not isinstance(record, dict) or not record.get("name"):
        raise ExportValidationError(f"Client '{client_id}' returned no usable record")
    return record


def build_pr_body(record: Dict[str, Any], resource_name: str, file_path: str) -> str:
    lines = [
        "## Auth0 application export",
        "",
        f"- **Name:** {record['name']}",
        f"- **Client ID:** `{record.get('client_id', '')}`",
        f"- **Application type:** {record.get('app_type', 'unknown')}",
        f"- **Terraform resource:** `auth0_client.{resource_name}`",
        f"- **File:** `{file_path}`",
    ]
    if needs_credentials_resource(record):
        lines.append(f"- Includes `auth0_client_credentials.{resource_name}`")
    lines.extend([
        "",
        "Import the existing application before applying:",
        "",
        "```",
        f"terraform import auth0_client.{resource_name} {record.get('client_id', '')}",
        "```",
    ])
    return "\n".join(lines)


def export_client_to_terraform_pr(repo_path: str,
                                  client: Optional[Auth0Client] = None,
                                  client_id: Optional[str] = None,
                                  client_data: Optional[Dict[str, Any]] = None,
                                  file_path: str = DEFAULT_TERRAFORM_FILE,
                                  base_branch: Optional[str] = None,
                                  dry_run: bool = False,
                                  options: Optional[MappingOptions] = None,
                                  generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Generate HCL for one application and, unless dry_run, open a PR with it."""
    if not repo_path:
        raise ExportValidationError("terraform_repo_path is required")

    options = options or MappingOptions()
    record = resolve_client(client, client_id, client_data)
    resource_name = generate_resource_name(record["name"], options.resource_name_prefix)
    hcl = generate_client_hcl_with_header(record, options, generated_at=generated_at)

    result: Dict[str, Any] = {
        "client_name": record["name"],
        "client_id": record.get("client_id", ""),
        "resource_name": resource_name,
        "file_path": file_path,
    }

    if dry_run:
        logger.info(f"Dry run: generated HCL for {record['name']}")
        result.update({"status": "dry_run", "generated_hcl": hcl})
        return result

    validate_git_repo(repo_path)
    check_gh_cli()

    branch_name = generate_branch_name("client", record["name"], now=generated_at)
    pr = create_pr_with_changes(
        repo_path,
        branch_name=branch_name,
        file_path=file_path,
        content=hcl,
        commit_message=f"Add Auth0 client {record['name']} (auth0_client.{resource_name})",
        pr_title=f"Add Auth0 client: {record['name']}",
        pr_body=build_pr_body(record, resource_name, file_path),
        base_branch=base_branch,
    )
    result.update({
        "status": "success",
        "pr_url": pr.pr_url,
        "branch_name": pr.branch_name,
        "files_changed": pr.files_changed,
    })
    return result


def main():
    parser = argparse.ArgumentParser(
        prog="auth0-terraform-export",
        description="Export an Auth0 application as Terraform HCL and open a pull request"
    )
    parser.add_argument("--domain", default=os.environ.get("AUTH0_DOMAIN"),
                        help="Auth0 tenant domain (or AUTH0_DOMAIN env var)")
    parser.add_argument("--token", default=os.environ.get("AUTH0_TOKEN"),
                        help="Management API token (or AUTH0_TOKEN env var)")
    parser.add_argument("--insecure", action="store_true",
                        default=bool(os.environ.get("AUTH0_EXPORT_INSECURE")),
                        help="Skip TLS certificate verification")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--client-id", help="Application client_id to fetch from the tenant")
    source.add_argument("--client-data", metavar="FILE",
                        help="JSON file holding the application record (no API call)")
    parser.add_argument("--repo", required=True,
                        help="Path to the Terraform git repository")
    parser.add_argument("--file-path", default=DEFAULT_TERRAFORM_FILE,
                        help=f"File to append to, relative to the repo (default: {DEFAULT_TERRAFORM_FILE})")
    parser.add_argument("--base-branch", help="PR base branch (default: repository default branch)")
    parser.add_argument("--prefix", help="Prefix for the Terraform resource name")
    parser.add_argument("--literal-jwt-lifetime", action="store_true",
                        help="Write the JWT lifetime literally instead of as a variable reference")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the generated HCL without touching the repository")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose output")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    client = None
    client_data = None
    if args.client_id:
        if not args.domain:
            parser.error("--domain is required with --client-id (or set AUTH0_DOMAIN)")
        if not args.token:
            parser.error("--token is required with --client-id (or set AUTH0_TOKEN)")
        client = Auth0Client(args.domain, args.token, insecure=args.insecure)
    else:
        try:
            with open(args.client_data) as f:
                client_data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            print(f"ERROR: Could not read {args.client_data}: {e}", file=sys.stderr)
            sys.exit(1)

    options = MappingOptions(
        use_variable_for_jwt_lifetime=not args.literal_jwt_lifetime,
        resource_name_prefix=args.prefix,
    )

    try:
        result = export_client_to_terraform_pr(
            args.repo,
            client=client,
            client_id=args.client_id,
            client_data=client_data,
            file_path=args.file_path,
            base_branch=args.base_branch,
            dry_run=args.dry_run,
            options=options,
        )
    except ExportValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except Auth0APIError as e:
        print(f"ERROR: Could not fetch client: {describe_api_error(e)}", file=sys.stderr)
        sys.exit(1)
    except GitOperationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if e.details:
            print(f"  {e.details}", file=sys.stderr)
        sys.exit(1)

    if result["status"] == "dry_run":
        print(result["generated_hcl"])
        return

    print(f"Exported {result['client_name']} as auth0_client.{result['resource_name']}")
    print(f"  Branch: {result['branch_name']}")
    print(f"  Pull request: {result['pr_url']}")


if __name__ == "__main__":
    main()
