"""
Verify the app registration can reach Microsoft Graph for transcript subscriptions.

Acquires an app-only token (client credentials), lists the subscriptions the
app owns, and optionally lists a user's meeting transcripts to confirm the
OnlineMeetingTranscript.Read.All permission has admin consent.

Usage:
    uv run python scripts/verify_graph_credentials.py
    uv run python scripts/verify_graph_credentials.py --user-id alex@contoso.com

Required environment variables in .env:
    AZURE_TENANT_ID=your-tenant-id
    AZURE_CLIENT_ID=your-client-id
    AZURE_CLIENT_SECRET=your-client-secret
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.auth import GRAPH_DEFAULT_SCOPE, get_app_credential
from src.config import AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID, USER_ID
from src.errors import GraphApiError
from src.graph import transcripts
from src.graph.client import GraphClient
from src.webhook.subscription import SubscriptionManager
from src.webhook.wiring import missing_credentials


def print_header(text: str) -> None:
    """Print a formatted header."""
    print(f"\n{'='*60}")
    print(f"  {text}")
    print(f"{'='*60}\n")


def print_success(text: str) -> None:
    print(f"[OK] {text}")


def print_error(text: str) -> None:
    print(f"[ERROR] {text}")


def print_info(text: str) -> None:
    print(f"[INFO] {text}")


async def verify(user_id: str | None) -> bool:
    print_header("Microsoft Graph API - Application Permissions")

    missing = missing_credentials()
    if missing:
        print_error(f"Missing environment variables: {', '.join(missing)}")
        print_info("Please add these to your .env file:")
        for var in missing:
            print(f"    {var}=your-value-here")
        return False

    print_success("All required environment variables found")
    print(f"    Tenant ID: {AZURE_TENANT_ID[:8]}...")
    print(f"    Client ID: {AZURE_CLIENT_ID[:8]}...")

    print_header("Testing Authentication")
    credential = get_app_credential(AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET)
    try:
        token = credential.get_token(GRAPH_DEFAULT_SCOPE)
    except RuntimeError as e:
        print_error(f"Failed to acquire token: {e}")
        print_info("Check your AZURE_TENANT_ID, AZURE_CLIENT_ID, and AZURE_CLIENT_SECRET")
        return False
    print_success(f"Access token acquired (expires: {token.expires_on})")

    print_header("Testing Graph API Access")
    async with GraphClient(credential) as client:
        try:
            subs = await SubscriptionManager(client).list_subscriptions()
        except GraphApiError as e:
            print_error(f"Failed to list subscriptions: {e}")
            return False
        print_success(f"Listed {len(subs)} subscription(s) owned by this app")
        for sub in subs[:5]:
            print(f"   {sub.id}  {sub.resource}  expires {sub.expiration_date_time}")

        if user_id:
            print_info(f"Listing transcripts of meetings organized by {user_id}...")
            try:
                items = await transcripts.list_user_transcripts(client, user_id, limit=5)
            except GraphApiError as e:
                print_error(f"Failed to list transcripts: {e}")
                if e.status_code == 403:
                    print_info("Grant OnlineMeetingTranscript.Read.All (Application) with ADMIN CONSENT")
                return False
            print_success(f"Retrieved {len(items)} transcript(s)")

    print_header("Verification Complete")
    print_success("All checks passed! Application permissions are working.")
    return True


def main():
    parser = argparse.ArgumentParser(description="Verify Microsoft Graph API credentials")
    parser.add_argument(
        "--user-id",
        default=USER_ID or None,
        help="Also list this organizer's transcripts (defaults to USER_ID)",
    )
    args = parser.parse_args()

    success = asyncio.run(verify(args.user_id))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
