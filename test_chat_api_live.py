#!/usr/bin/env python3
"""
Smoke test against a running Chat Session API: multiple users, each with
several sessions and turns, then deletion of one session per user.
Run with: APP_PASSWORD=... python test_chat_api_live.py [BASE_URL] [MODEL_ID]
Default BASE_URL: http://localhost:8000
"""
import http.cookiejar
import json
import os
import sys
import urllib.error
import urllib.parse
import urllib.request
import uuid

BASE_URL = "http://localhost:8000"
MODEL_ID = "@cf/meta/llama-3.1-8b-instruct"
NUM_USERS = 3
SESSIONS_PER_USER = 2
QUESTIONS_PER_SESSION = 3

_cookies = http.cookiejar.CookieJar()
_opener = urllib.request.build_opener(
    urllib.request.HTTPCookieProcessor(_cookies),
)


class _NoRedirect(urllib.request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


_anonymous = urllib.request.build_opener(_NoRedirect)


def request(method: str, path: str, body: dict = None, opener=None) -> tuple[int, object]:
    url = f"{BASE_URL.rstrip('/')}{path}"
    data = json.dumps(body).encode("utf-8") if body is not None else None
    req = urllib.request.Request(url, data=data, method=method)
    req.add_header("Content-Type", "application/json")
    try:
        with (opener or _opener).open(req, timeout=120) as resp:
            raw = resp.read().decode()
            try:
                return resp.status, json.loads(raw)
            except json.JSONDecodeError:
                return resp.status, raw
    except urllib.error.HTTPError as e:
        raw = e.read().decode()
        try:
            return e.code, json.loads(raw)
        except json.JSONDecodeError:
            return e.code, {"detail": raw}
    except urllib.error.URLError as e:
        print(f"Connection error: {e}")
        sys.exit(1)


def _q(**params) -> str:
    return urllib.parse.urlencode(params)


def main():
    global BASE_URL, MODEL_ID
    if len(sys.argv) > 1:
        BASE_URL = sys.argv[1]
    if len(sys.argv) > 2:
        MODEL_ID = sys.argv[2]
    password = os.environ.get("APP_PASSWORD")
    if not password:
        print("APP_PASSWORD must be set")
        sys.exit(1)

    print(f"Testing Chat Session API at {BASE_URL} with model {MODEL_ID}")
    print(f"Users: {NUM_USERS}  |  Sessions per user: {SESSIONS_PER_USER}  |  Questions per session: {QUESTIONS_PER_SESSION}\n")

    # --- Gate ---
    print("0. Access gate")
    status, _ = request("GET", "/api/session_list?" + _q(userId="probe"), opener=_anonymous)
    if status != 302:
        print(f"   FAIL: expected 302 without cookie, got {status}")
        sys.exit(1)
    status, data = request("POST", "/authenticate", {"password": password})
    if status != 200:
        print(f"   FAIL: {status} {data}")
        sys.exit(1)
    print("   OK: redirected when anonymous, authenticated with password\n")

    question_templates = [
        "Hello! Can you introduce yourself in one sentence?",
        "What did I just ask you?",
        "Summarize our conversation so far in one short sentence.",
    ]
    while len(question_templates) < QUESTIONS_PER_SESSION:
        question_templates.append(question_templates[-1])

    failed = []

    for user_idx in range(NUM_USERS):
        user_id = f"smoke-user-{user_idx + 1}-{uuid.uuid4().hex[:6]}"
        session_ids = [str(uuid.uuid4()) for _ in range(SESSIONS_PER_USER)]
        print(f"--- {user_id} ---")

        for session_id in session_ids:
            for q_idx in range(QUESTIONS_PER_SESSION):
                payload = {
                    "question": question_templates[q_idx],
                    "sessionId": session_id,
                    "userId": user_id,
                    "model": MODEL_ID,
                    "type": "text",
                }
                status, data = request("POST", "/api/chat", payload)
                if status != 200:
                    print(f"   FAIL chat: status {status} -> {data}")
                    failed.append((user_id, session_id, status, data))
                    break
                answer_preview = (data.get("answer") or "")[:60].replace("\n", " ")
                print(f"   {session_id[:8]} Q{q_idx + 1} OK | {answer_preview}...")

            status, history = request("GET", "/api/history?" + _q(sessionId=session_id, userId=user_id))
            if status != 200 or len(history) != 2 * QUESTIONS_PER_SESSION:
                print(f"   FAIL history: status {status}, {len(history) if isinstance(history, list) else history}")
                failed.append((user_id, session_id, status, history))

        status, sessions = request("GET", "/api/session_list?" + _q(userId=user_id))
        listed = {s["id"] for s in sessions} if status == 200 else set()
        if listed != set(session_ids):
            print(f"   FAIL session_list: {sessions}")
            failed.append((user_id, None, status, sessions))

        status, data = request("POST", "/api/delete_session", {"sessionId": session_ids[0], "userId": user_id})
        _, sessions = request("GET", "/api/session_list?" + _q(userId=user_id))
        _, history = request("GET", "/api/history?" + _q(sessionId=session_ids[0], userId=user_id))
        if status != 200 or session_ids[0] in {s["id"] for s in sessions} or history != []:
            print(f"   FAIL delete: status {status}, sessions {sessions}, history {history}")
            failed.append((user_id, session_ids[0], status, data))
        else:
            print(f"   deleted {session_ids[0][:8]} OK\n")

    # --- Unknown model ---
    status, data = request("POST", "/api/chat", {
        "question": "hi", "sessionId": "x", "userId": "smoke-probe", "model": "@cf/not-a-model",
    })
    if status != 400:
        failed.append(("smoke-probe", "x", status, data))

    # --- Summary ---
    print("=" * 50)
    if failed:
        print(f"FAILED: {len(failed)} check(s)")
        for u, s, st, d in failed:
            print(f"  {u} {s}: {st} {d}")
        sys.exit(1)

    request("POST", "/logout")
    print("All checks passed.")
    print(f"  Total chat turns: {NUM_USERS * SESSIONS_PER_USER * QUESTIONS_PER_SESSION}")


if __name__ == "__main__":
    main()
