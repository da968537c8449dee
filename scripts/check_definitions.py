"""
Validate an access definitions file before it is deployed.

Builds the permission catalog, role registry and security policy table exactly
as the service does at startup. Any configuration error is printed and the
script exits with status 1, so a broken file fails the deployment instead of
the service.

Usage:
    python -m scripts.check_definitions              # packaged defaults
    python -m scripts.check_definitions path/to/definitions.json
"""
import sys
import os

# Add parent directory to path to import access_core
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from access_core.auth.definitions import load_definitions
from access_core.errors import ConfigurationError
from access_core.services.access_control import AccessControl


def check_definitions(path: str | None = None) -> AccessControl:
    definitions = load_definitions(path)
    return AccessControl.from_definitions(definitions)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    path = args[0] if args else None
    source = path or "packaged defaults"

    print(f"Checking access definitions: {source}")
    try:
        access_control = check_definitions(path)
    except ConfigurationError as e:
        print(f"  ERROR [{e.code}]: {e.message}")
        if e.details:
            print(f"  Details: {e.details}")
        return 1

    print(f"  ✓ Permissions: {len(access_control.catalog)}")
    print(f"  ✓ Roles: {', '.join(access_control.registry.names())}")
    print(f"  ✓ Guarded categories: {len(access_control.policies)}")
    print("\n✅ Access definitions are valid")
    return 0


if __name__ == "__main__":
    sys.exit(main())
