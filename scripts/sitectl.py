#!/usr/bin/env python3
"""sitectl - command-line client for a sitehost server.

Usage:
    sitectl.py deploy <directory|archive.tgz>          # Deploy a site
    sitectl.py backup <name> [output.tgz]              # Download a backup
    sitectl.py publish <@scope/name> <version> <file>  # Publish a module

Environment:
    SITEHOST_URL: Server base URL (e.g. https://sites.example.com)
    SITEHOST_TOKEN: Deploy secret (the server's API_KEY)
"""

import os
import sys
from pathlib import Path

from sitehost.client import ClientError, SiteClient


def get_client() -> SiteClient:
    """Create a client from environment variables, exit if unconfigured."""
    url = os.environ.get("SITEHOST_URL", "")
    token = os.environ.get("SITEHOST_TOKEN", "")
    if not url or not token:
        print("Error: SITEHOST_URL and SITEHOST_TOKEN must be set", file=sys.stderr)
        sys.exit(1)
    return SiteClient(url, token)


def cmd_deploy(source: str) -> None:
    """Deploy a directory or an existing archive."""
    path = Path(source)
    with get_client() as client:
        if path.is_dir():
            result = client.deploy_directory(path)
        elif path.is_file():
            result = client.deploy(path.read_bytes())
        else:
            print(f"Error: {source} does not exist", file=sys.stderr)
            sys.exit(1)

    print(f"Deployed {result['id']}")
    print(f"URL: {result['url']}")
    if result.get("alias"):
        print(f"Alias: {result['alias']}")


def cmd_backup(name: str, output: str | None = None) -> None:
    """Download a tenant backup."""
    with get_client() as client:
        data = client.backup(name)
    target = Path(output or f"{name}.tgz")
    target.write_bytes(data)
    print(f"Saved {len(data)} bytes to {target}")


def cmd_publish(package: str, version: str, source: str) -> None:
    """Publish a module file as a package version."""
    scope, _, name = package.partition("/")
    if not scope.startswith("@") or not name:
        print(f"Error: package must look like @scope/name, got '{package}'", file=sys.stderr)
        sys.exit(1)

    with get_client() as client:
        tarball = client.publish(scope, name, version, Path(source).read_bytes())
    print(f"Published {package}@{version}")
    print(f"Tarball: {tarball}")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1]

    try:
        if cmd == "deploy" and len(sys.argv) == 3:
            cmd_deploy(sys.argv[2])
        elif cmd == "backup" and len(sys.argv) in (3, 4):
            cmd_backup(sys.argv[2], sys.argv[3] if len(sys.argv) == 4 else None)
        elif cmd == "publish" and len(sys.argv) == 5:
            cmd_publish(sys.argv[2], sys.argv[3], sys.argv[4])
        else:
            print(__doc__)
            sys.exit(1)
    except ClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
