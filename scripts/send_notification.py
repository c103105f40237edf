#!/usr/bin/env python3
"""
Send a single push notification through FCM.

Usage:
    python scripts/send_notification.py --token <registration_token> "Title" "Message"
    python scripts/send_notification.py --topic news "Title" "Message" --data '{"type":"test"}'

Environment Variables:
    GOOGLE_APPLICATION_CREDENTIALS: Path to the service account key file
    FCM_SERVICE_ACCOUNT_KEY_JSON: Raw service account key JSON (takes precedence)
    FCM_DRY_RUN: Validate the message without delivering it
"""

import argparse
import asyncio
import json
import sys

import dotenv

from fcm_dispatch.config import get_settings
from fcm_dispatch.core.exceptions import FcmException
from fcm_dispatch.core.logging import configure_logging
from fcm_dispatch.schemas.message import Message, Target
from fcm_dispatch.schemas.notification import Notification
from fcm_dispatch.services.fcm_client import FcmClient
from fcm_dispatch.services.response_classifier import classify, recommended_action

dotenv.load_dotenv()


async def send_notification(
    target: Target,
    title: str,
    body: str,
    data: dict[str, str] | None = None,
    dry_run: bool = False,
    key_path: str | None = None,
) -> int:
    """Send one notification and print the outcome. Returns the exit code."""
    settings = get_settings()
    configure_logging(settings)

    message = Message(
        target=target,
        notification=Notification(title=title, body=body),
        data=data,
    )

    try:
        async with FcmClient.from_settings(
            settings,
            credential_source=key_path,
            dry_run=dry_run or settings.dry_run,
        ) as client:
            response = await client.send(message)
    except FcmException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    classification = classify(response)
    action = recommended_action(response)

    print(f"   Status:         {response.http_status_code}")
    print(f"   Classification: {classification.value}")
    if response.message_name:
        print(f"   Message:        {response.message_name}")
    if response.error_message:
        print(f"   Error:          {response.error_message}")
    if action is not None:
        print(f"   Action:         {action.kind.value}")
        if action.wait is not None:
            print(f"   Wait:           {action.wait.wait_time().total_seconds():.0f}s")

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Send a push notification through FCM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Notification to one device
  python send_notification.py --token fGw0qy4TGgk:APA91bG... "Test" "Hello"

  # Topic notification with custom data, validated only
  python send_notification.py --topic news "Title" "Body" --data '{"type":"digest"}' --dry-run

  # Using an explicit key file
  python send_notification.py --key-path service-account.json --condition "'a' in topics" "T" "B"
        """,
    )

    target_group = parser.add_mutually_exclusive_group(required=True)
    target_group.add_argument("--token", type=str, help="Device registration token")
    target_group.add_argument("--topic", type=str, help="Topic name, with or without /topics/")
    target_group.add_argument("--condition", type=str, help="Topic condition expression")

    parser.add_argument("title", help="Notification title")
    parser.add_argument("body", help="Notification body/message")
    parser.add_argument(
        "--data",
        type=str,
        help='Custom data payload as JSON object of strings (e.g., \'{"type":"test"}\')',
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the message without delivering it",
    )
    parser.add_argument(
        "--key-path",
        type=str,
        help="Service account key file (default: from environment)",
    )

    args = parser.parse_args()

    data = None
    if args.data:
        try:
            data = json.loads(args.data)
        except json.JSONDecodeError as e:
            print(f"Error: Invalid JSON in --data: {e}", file=sys.stderr)
            sys.exit(1)
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            print("Error: --data must be a JSON object with string values", file=sys.stderr)
            sys.exit(1)

    try:
        if args.token:
            target = Target.token(args.token)
        elif args.topic:
            target = Target.topic(args.topic)
        else:
            target = Target.condition(args.condition)
    except ValueError as e:
        print(f"Error: Invalid target: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(
        asyncio.run(
            send_notification(
                target,
                args.title,
                args.body,
                data,
                args.dry_run,
                args.key_path,
            )
        )
    )


if __name__ == "__main__":
    main()
