"""Stand-in for the claude binary used by the subprocess tests.

Print mode (--print -- PROMPT): emits an assistant message echoing the
prompt and a result, then exits.

Streaming mode (--input-format stream-json): answers every user message
with an assistant message and a result, answers control requests with a
success response echoing the subtype, and exits when stdin closes.

FAKE_CLI_MODE=fail writes to stderr and exits with status 3 at once.
FAKE_CLI_MODE=noise prints a non-JSON line before every reply.
"""

import json
import os
import sys


def emit(obj):
    sys.stdout.write(json.dumps(obj) + "\n")
    sys.stdout.flush()


def reply_to(text, session_id="default"):
    if os.environ.get("FAKE_CLI_MODE") == "noise":
        sys.stdout.write("debug: not json\n")
    emit(
        {
            "type": "assistant",
            "message": {"model": "fake", "content": [{"type": "text", "text": f"echo: {text}"}]},
            "session_id": session_id,
        }
    )
    emit(
        {
            "type": "result",
            "subtype": "success",
            "duration_ms": 1,
            "duration_api_ms": 1,
            "is_error": False,
            "num_turns": 1,
            "session_id": session_id,
            "total_cost_usd": 0.0,
        }
    )


def main(argv):
    if os.environ.get("FAKE_CLI_MODE") == "fail":
        sys.stderr.write("boom\n")
        sys.stderr.flush()
        sys.exit(3)

    sys.stderr.write(f"entrypoint={os.environ.get('CLAUDE_CODE_ENTRYPOINT')}\n")
    sys.stderr.flush()

    if "--print" in argv:
        reply_to(argv[argv.index("--") + 1])
        return

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        message = json.loads(line)
        if message.get("type") == "user":
            reply_to(message["message"]["content"], message.get("session_id", "default"))
        elif message.get("type") == "control_request":
            emit(
                {
                    "type": "control_response",
                    "response": {
                        "subtype": "success",
                        "request_id": message["request_id"],
                        "response": {"echo": message["request"]["subtype"]},
                    },
                }
            )


if __name__ == "__main__":
    main(sys.argv[1:])
