#!/usr/bin/env python3
"""
Post-Deployment Health Check Script

Validates that a deployed Blue Harvests backend is up, can reach its
database and enforces authentication on protected routes.

Usage:
    python scripts/health_check.py --url <DEPLOYMENT_URL> --environment <staging|production>

Checks Performed:
    1. /api/health returns 200 and the database is connected
    2. /api/products (public catalog) returns 200
    3. /auth/me without a token returns 401
    4. /api/jobs/generate-batches without credentials returns 401

Exit Codes:
    0: All health checks passed
    1: One or more health checks failed
"""

import argparse
import sys
import time
import requests
from typing import Dict, Tuple


def check_endpoint(url: str, endpoint: str, timeout: int = 10, expected_status: int = 200,
                   method: str = 'GET') -> Tuple[bool, str]:
    """
    Checks that an endpoint answers with the expected HTTP status code.

    Returns:
        Tuple[bool, str]: (success, message)
    """
    full_url = f"{url.rstrip('/')}{endpoint}"

    try:
        response = requests.request(method, full_url, timeout=timeout, allow_redirects=True)
    except requests.exceptions.Timeout:
        return False, f"✗ {endpoint} timed out after {timeout} seconds"
    except requests.exceptions.ConnectionError:
        return False, f"✗ {endpoint} connection failed"
    except requests.exceptions.RequestException as e:
        return False, f"✗ {endpoint} error: {str(e)}"

    if response.status_code == expected_status:
        return True, f"✓ {method} {endpoint} returned {response.status_code}"
    return False, f"✗ {method} {endpoint} returned {response.status_code} (expected {expected_status})"


def check_health_endpoint(url: str, timeout: int = 10) -> Tuple[bool, str]:
    """Checks /api/health and verifies database connectivity."""
    full_url = f"{url.rstrip('/')}/api/health"

    try:
        response = requests.get(full_url, timeout=timeout)
    except requests.exceptions.Timeout:
        return False, f"✗ /api/health timed out after {timeout} seconds"
    except requests.exceptions.ConnectionError:
        return False, "✗ /api/health connection failed"
    except requests.exceptions.RequestException as e:
        return False, f"✗ /api/health error: {str(e)}"

    try:
        data = response.json()
    except ValueError:
        return False, f"✗ /api/health returned {response.status_code} with invalid JSON"

    db_status = data.get('database', {}).get('status', 'unknown')
    if response.status_code == 200 and db_status == 'connected':
        return True, "✓ /api/health returned 200, database connected"
    return False, f"✗ /api/health returned {response.status_code}, database status: {db_status}"


def run_health_checks(url: str, environment: str) -> Dict[str, Tuple[bool, str]]:
    print(f"\n{'='*60}")
    print(f"Post-Deployment Health Checks - {environment.upper()}")
    print(f"{'='*60}\n")
    print(f"Target URL: {url}\n")

    results = {}

    print("Check 1: API health check with database (/api/health)...")
    results["api_health"] = check_health_endpoint(url, timeout=15)
    print(f"  {results['api_health'][1]}\n")

    print("Check 2: Public catalog (/api/products)...")
    results["catalog"] = check_endpoint(url, "/api/products", timeout=15)
    print(f"  {results['catalog'][1]}\n")

    print("Check 3: Auth enforced (/auth/me without token)...")
    results["auth_required"] = check_endpoint(url, "/auth/me", timeout=15, expected_status=401)
    print(f"  {results['auth_required'][1]}\n")

    print("Check 4: Cron endpoints protected (/api/jobs/generate-batches)...")
    results["cron_protected"] = check_endpoint(url, "/api/jobs/generate-batches", timeout=15,
                                               expected_status=401, method='POST')
    print(f"  {results['cron_protected'][1]}\n")

    return results


def print_summary(results: Dict[str, Tuple[bool, str]], environment: str) -> bool:
    print(f"{'='*60}")
    print(f"Health Check Summary - {environment.upper()}")
    print(f"{'='*60}\n")

    passed = sum(1 for success, _ in results.values() if success)
    total = len(results)

    for check_name, (success, _) in results.items():
        symbol = "✓" if success else "✗"
        print(f"{symbol} {check_name}: {'PASS' if success else 'FAIL'}")

    print(f"\nTotal: {passed}/{total} checks passed\n")

    if passed == total:
        print("✓ All health checks passed. Deployment is healthy.\n")
        return True
    print(f"✗ {total - passed} health check(s) failed. Investigate issues above.\n")
    return False


def main():
    parser = argparse.ArgumentParser(description="Run post-deployment health checks")
    parser.add_argument("--url", required=True, help="Deployment URL to check")
    parser.add_argument("--environment", required=True, choices=["staging", "production"],
                        help="Deployment environment")
    parser.add_argument("--retry", type=int, default=3,
                        help="Number of attempts before giving up (default: 3)")
    parser.add_argument("--retry-delay", type=int, default=10,
                        help="Delay in seconds between retries (default: 10)")
    args = parser.parse_args()

    for attempt in range(1, args.retry + 1):
        if attempt > 1:
            print(f"\nRetry attempt {attempt}/{args.retry}")
            time.sleep(args.retry_delay)

        results = run_health_checks(args.url, args.environment)
        if print_summary(results, args.environment):
            sys.exit(0)

    print(f"✗ HEALTH CHECKS FAILED AFTER {args.retry} ATTEMPTS", file=sys.stderr)
    print("Deployment completed but application may not be healthy.", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
