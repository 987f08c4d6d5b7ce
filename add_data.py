"""
Script to walk a running Fee Portal REST server through signup, profile
update and payment.

Start the server first:
    python -m feeportal.main --serve --port 8000

Usage:
    python add_data.py
"""

import os
import sys

import requests


def _console_supports_utf8() -> bool:
    enc = getattr(sys.stdout, "encoding", None)
    return enc is not None and "utf" in enc.lower()


_OK_CHAR = "✓" if _console_supports_utf8() else "[OK]"
_FAIL_CHAR = "✗" if _console_supports_utf8() else "[FAIL]"

BASE_URL = os.environ.get("FEEPORTAL_BASE_URL", "http://127.0.0.1:8000")
# Payment waits out the simulated processing delay server-side.
PAYMENT_TIMEOUT = 30


def check_server(session: requests.Session) -> bool:
    """Check if the server is running."""
    try:
        response = session.get(f"{BASE_URL}/health", timeout=2)
        if response.status_code == 200:
            print(f"{_OK_CHAR} Server is running at {BASE_URL}")
            return True
    except requests.exceptions.RequestException:
        pass
    print(f"{_FAIL_CHAR} Server is not running at {BASE_URL}!")
    print("\nPlease start the server first:")
    print("  python -m feeportal.main --serve --port 8000")
    return False


def signup(session: requests.Session, name: str, email: str, password: str) -> bool:
    response = session.post(f"{BASE_URL}/auth/signup",
                            json={"name": name, "email": email, "password": password})
    if response.status_code == 201:
        print(f"{_OK_CHAR} Signed up {name} <{email}>")
        return True
    if response.status_code == 409:
        print(f"{_FAIL_CHAR} {email} already exists, logging in instead")
        return login(session, email, password)
    print(f"{_FAIL_CHAR} Signup failed: {response.text}")
    return False


def login(session: requests.Session, email: str, password: str) -> bool:
    response = session.post(f"{BASE_URL}/auth/login", json={"email": email, "password": password})
    if response.status_code == 200:
        print(f"{_OK_CHAR} Logged in as {email}")
        return True
    print(f"{_FAIL_CHAR} Login failed: {response.json().get('detail')}")
    return False


def update_profile(session: requests.Session, **changes) -> None:
    response = session.patch(f"{BASE_URL}/profile", json=changes)
    if response.status_code == 200:
        print(f"{_OK_CHAR} Profile updated: {response.json()['student']}")
    else:
        print(f"{_FAIL_CHAR} Profile update failed: {response.json().get('detail')}")


def pay_fees(session: requests.Session) -> None:
    fees = session.get(f"{BASE_URL}/fees").json()
    print(f"  Paying {fees['currency']} {fees['total']}...")
    response = session.post(f"{BASE_URL}/payments", timeout=PAYMENT_TIMEOUT)
    if response.status_code == 200:
        print(f"{_OK_CHAR} Payment completed")
    else:
        print(f"{_FAIL_CHAR} Payment failed: {response.json().get('detail')}")


def show_statistics(session: requests.Session) -> None:
    stats = session.get(f"{BASE_URL}/students/statistics").json()
    print(f"\nStudents: {stats['total']} total, {stats['paid']} paid ({stats['paid_percent']}%), "
          f"{stats['unpaid']} unpaid ({stats['unpaid_percent']}%)")
    for student in session.get(f"{BASE_URL}/students").json():
        mark = _OK_CHAR if student['fees_paid'] else _FAIL_CHAR
        print(f"  {mark} {student['name']:<20} {student['email']}")


def main():
    with requests.Session() as session:
        if not check_server(session):
            sys.exit(1)

        if signup(session, "Zoe Miller", "zoe@student.edu", "secret"):
            update_profile(session, name="Zoe M. Miller")
            pay_fees(session)

        # Duplicate email is rejected
        signup(session, "Alice Clone", "alice@student.edu", "password123")
        show_statistics(session)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{_FAIL_CHAR} Interrupted by user")
        sys.exit(1)
