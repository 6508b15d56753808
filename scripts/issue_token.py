"""Print an API bearer token for a user id.

Usage:
  python scripts/issue_token.py <user_id>
"""

import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from resume_evaluator import create_app
from resume_evaluator.auth import issue_token


def main():
    if len(sys.argv) != 2:
        print(__doc__.strip())
        sys.exit(2)
    app = create_app()
    with app.app_context():
        print(issue_token(sys.argv[1]))


if __name__ == '__main__':
    main()
