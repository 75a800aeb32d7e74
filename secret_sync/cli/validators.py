"""Input validation for CLI arguments."""
import re
import sys

# GCP secret IDs: letters, digits, underscores and hyphens, at most 255 chars
SECRET_NAME_PATTERN = r'^[a-zA-Z0-9_-]{1,255}$'


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

    if not re.match(SECRET_NAME_PATTERN, name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Not allowed: dots (.), slashes, spaces, special characters (@, $, !, etc.)", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ app-env", file=sys.stderr)
        print("  ✓ BACKEND_ENV_PROD", file=sys.stderr)
        sys.exit(2)


def validate_jobs(jobs: int) -> None:
    """
    Validate the number of entries processed concurrently.

    Raises:
        SystemExit with code 2 if jobs is below 1
    """
    if jobs < 1:
        print(f"Error: --jobs must be at least 1 (got {jobs})", file=sys.stderr)
        sys.exit(2)
