#!/usr/bin/env python3
"""
Collaboration Client

Talks to a collaboration server to start or join a shared project, then
runs a simulated push/pull with progress reporting. The server is not part
of this repository; point --server at one.

Endpoints used:
- POST /api/start-collaboration  {project_name, user_email, project_description}
- POST /api/join-collaboration   {user_email, token}

Both answer {success, message, project_id, repo_url, token}.

Demonstrates:
- Task bodies that yield on HTTP requests and inspect the result afterwards
- Timed progress with Delay
- Running a scheduler from synchronous code with BlockingHost
"""

import argparse
import logging
from dataclasses import dataclass

from tickrun import BlockingHost, Delay, Scheduler
from tickrun.http import RequestResult, post_json


@dataclass
class PanelState:
    """What a UI would show."""

    status_message: str = ""
    is_loading: bool = False
    project_id: str = ""
    repo_url: str = ""
    token: str = ""

    def show(self):
        marker = "!" if self.status_message.startswith("Error") else "-"
        print(f"  {marker} {self.status_message}", flush=True)


def send_collaboration_request(url, payload, panel):
    """POST a collaboration request and copy the response into the panel."""
    panel.is_loading = True
    request = post_json(url, payload, timeout=30)
    yield request.send()
    panel.is_loading = False

    if request.result is not RequestResult.SUCCESS:
        panel.status_message = f"Error: {request.error}"
        panel.show()
        return

    response = request.json()
    if response.get("success"):
        panel.status_message = response.get("message", "")
        panel.repo_url = response.get("repo_url") or ""
        panel.project_id = response.get("project_id") or ""
        panel.token = response.get("token") or panel.token
    else:
        panel.status_message = "Error: " + response.get("message", "unknown error")
    panel.show()


def simulate_git_action(action, panel, step_delay=0.2):
    """Fake a push/pull with a progress readout."""
    panel.is_loading = True
    panel.status_message = f"{action} in progress..."
    panel.show()

    progress = 0.0
    while progress < 1.0:
        yield Delay(step_delay)
        progress = min(1.0, progress + 0.1)
        print(f"\r    {action}: {progress * 100:3.0f}%", end="", flush=True)
    print()

    panel.is_loading = False
    panel.status_message = f"{action} complete!"
    panel.show()


def main():
    parser = argparse.ArgumentParser(description="Start or join a collaboration")
    parser.add_argument("--server", default="http://localhost:8080")
    parser.add_argument("--email", required=True)
    parser.add_argument("--project", default="MyProject")
    parser.add_argument("--description", default="")
    parser.add_argument("--join-token", help="Join an existing collaboration instead of starting one")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    host = BlockingHost(interval=0.05)
    scheduler = Scheduler(host)
    panel = PanelState()

    @scheduler.on_failure
    def on_failure(task, error):
        panel.status_message = f"Error: {error}"
        panel.show()

    if args.join_token:
        print(f"Joining collaboration at {args.server}...")
        scheduler.submit(send_collaboration_request(
            f"{args.server}/api/join-collaboration",
            {"user_email": args.email, "token": args.join_token},
            panel,
        ))
    else:
        print(f"Starting collaboration '{args.project}' at {args.server}...")
        scheduler.submit(send_collaboration_request(
            f"{args.server}/api/start-collaboration",
            {
                "project_name": args.project,
                "user_email": args.email,
                "project_description": args.description,
            },
            panel,
        ))
    host.run()

    if not panel.repo_url:
        return

    print(f"\nProject ID:  {panel.project_id}")
    print(f"Repository:  {panel.repo_url}")
    print(f"Join token:  {panel.token}\n")

    scheduler.submit(simulate_git_action("Pull" if args.join_token else "Push", panel))
    host.run()


if __name__ == "__main__":
    main()
