#!/usr/bin/env python3
"""Generate test JWT tokens for API testing.

The API loads the user row named by the token subject, so pass ids of
existing users.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from firmwatch.api.deps import issue_smoke_token
from firmwatch.core.auth import Role

if len(sys.argv) < 3:
    print("Usage: generate_test_token.py USER_ID ROLE")
    sys.exit(1)

user_id, role = sys.argv[1], Role(sys.argv[2])
token = issue_smoke_token(user_id, role=role)
print(f"{role.value.capitalize()} Token:\n{token}")
