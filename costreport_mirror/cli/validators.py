"""Input validation for CLI arguments."""
import re
import sys


def validate_secret_name(name: str) -> None:
    """
    Validate secret name matches GCP requirements.

    GCP Secret Manager allows only: [a-zA-Z0-9_-]

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        print("\nSecret names must match: [a-zA-Z0-9_-]", file=sys.stderr)
        sys.exit(2)

    pattern = r'^[a-zA-Z0-9_-]+$'

    if not re.match(pattern, name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Examples of valid names: aws-access-key-id, AWS_SECRET_ACCESS_KEY", file=sys.stderr)
        sys.exit(2)


def mask(value: str) -> str:
    """Show at most the first four characters of a secret value."""
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 4)
