#!/usr/bin/env python3
"""Simple script to verify config.example.yaml structure without loading the package."""

import sys
from pathlib import Path

import yaml

KNOWN_SECTIONS = {
    "queue": {"max_attempts", "backoff_type", "backoff_delay", "max_backoff", "lease_timeout", "remove_on_complete"},
    "worker": {"concurrency", "poll_interval", "batch_size", "maintenance_interval"},
    "delivery": {"api_url", "timeout", "retry_client_errors", "user_agent"},
    "templates": {"directory"},
    "tokens": {"lifetime"},
    "app": {"name", "url"},
    "logging": {"level", "format"},
}


def verify_config_structure(config_file: Path = Path("config.example.yaml")) -> bool:
    """Verify a config file only uses known sections and keys."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        print(f"✗ Failed to parse {config_file}: {e}")
        return False

    errors = []

    if not isinstance(config, dict):
        errors.append("Top level must be a mapping")
        config = {}

    for section, value in config.items():
        if section not in KNOWN_SECTIONS:
            errors.append(f"Unknown section: {section}")
            continue
        if not isinstance(value, dict):
            errors.append(f"'{section}' must be a mapping")
            continue
        for key in value:
            if key not in KNOWN_SECTIONS[section]:
                errors.append(f"Unknown key: {section}.{key}")

    queue = config.get("queue") or {}
    if queue.get("backoff_type") not in (None, "exponential", "fixed"):
        errors.append(f"queue.backoff_type has invalid value: {queue['backoff_type']}")

    if errors:
        print(f"✗ {config_file} validation failed:")
        for error in errors:
            print(f"  - {error}")
        return False

    print(f"✓ {config_file} structure is valid")
    print(f"  - Sections: {', '.join(sorted(config)) or 'none (all defaults)'}")
    print(f"  - Max attempts: {queue.get('max_attempts', 'default')}")
    print(f"  - Worker concurrency: {(config.get('worker') or {}).get('concurrency', 'default')}")
    return True


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    sys.exit(0 if verify_config_structure(target) else 1)
