# src/tagdrop/services/drop_page.py
"""HTML shell served to browsers scanning a drop token.

The page holds no messages itself; its script fetches the JSON envelope
from the same URL and renders it with ``textContent``.
"""

from __future__ import annotations

from string import Template

from tagdrop.core.settings import settings
from tagdrop.services.drop_content import escape_html

_PAGE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="referrer" content="no-referrer">
    <title>Anonymous Drop</title>
    <style>
        body { margin: 0; padding: 20px; font-family: sans-serif; color: #0f172a;
               background: #f1f5f9; display: flex; justify-content: center; }
        .container { width: 100%; max-width: 460px; display: grid; gap: 14px; }
        .card { background: #fff; border: 1px solid #cbd5e1; border-radius: 16px; padding: 18px; }
        .token { font-size: 11px; color: #64748b; word-break: break-all; }
        textarea { width: 100%; min-height: 120px; box-sizing: border-box; font: inherit; }
        .status.error { color: #b91c1c; }
        .item { border: 1px solid #dbeafe; border-radius: 10px; padding: 10px; margin-top: 8px; }
        .item-time { color: #64748b; font-size: 11px; margin: 0; }
    </style>
</head>
<body>
    <div class="container">
        <section class="card">
            <h1>Anonymous Notice Drop</h1>
            <p>Send a short notice. No sender or receiver identity is stored.
               Messages expire in $ttl_days days.</p>
            <p class="token">Drop Token: $token_html</p>
        </section>
        <section class="card">
            <textarea id="content" maxlength="$max_chars"
                      placeholder="Write a short notice (max $max_chars chars)..."></textarea>
            <p><span id="counter">0/$max_chars</span></p>
            <button id="sendBtn">Send Notice</button>
            <button id="refreshBtn" type="button">Refresh</button>
            <div class="status" id="status"></div>
            <div id="list"></div>
            <p id="empty">No active notices right now.</p>
        </section>
    </div>
    <script>
        const maxChars = $max_chars;
        const endpoint = window.location.pathname;
        const contentEl = document.getElementById('content');
        const counterEl = document.getElementById('counter');
        const statusEl = document.getElementById('status');
        const listEl = document.getElementById('list');
        const emptyEl = document.getElementById('empty');
        const sendBtn = document.getElementById('sendBtn');

        const setStatus = (message, isError = false) => {
            statusEl.className = isError ? 'status error' : 'status';
            statusEl.textContent = message || '';
        };

        const decode = (value) => {
            const area = document.createElement('textarea');
            area.innerHTML = value;
            return area.value;
        };

        const renderMessages = (messages) => {
            const now = Date.now();
            const active = (Array.isArray(messages) ? messages : []).filter(
                (item) => new Date(item.expiresAt).getTime() > now
            );
            listEl.replaceChildren();
            emptyEl.style.display = active.length ? 'none' : 'block';
            active.forEach((item) => {
                const wrapper = document.createElement('article');
                wrapper.className = 'item';
                const content = document.createElement('p');
                content.textContent = decode(item.content);
                const meta = document.createElement('p');
                meta.className = 'item-time';
                meta.textContent = new Date(item.createdAt).toLocaleString();
                wrapper.append(content, meta);
                listEl.appendChild(wrapper);
            });
        };

        const fetchMessages = async () => {
            try {
                const response = await fetch(endpoint + '?format=json', {
                    headers: { 'Accept': 'application/json' },
                    cache: 'no-store',
                });
                const payload = await response.json();
                renderMessages(payload.messages);
            } catch {
                setStatus('Could not refresh messages. Try again.', true);
            }
        };

        contentEl.addEventListener('input', () => {
            counterEl.textContent = Array.from(contentEl.value).length + '/' + maxChars;
        });

        sendBtn.addEventListener('click', async () => {
            const rawContent = contentEl.value || '';
            if (!rawContent.trim()) {
                setStatus('Message cannot be empty.', true);
                return;
            }
            sendBtn.disabled = true;
            setStatus('Sending...');
            try {
                const response = await fetch(endpoint, {
                    method: 'POST',
                    headers: { 'Content-Type': 'application/json', 'Accept': 'application/json' },
                    cache: 'no-store',
                    body: JSON.stringify({ content: rawContent }),
                });
                if (!response.ok) {
                    setStatus('Request was throttled. Try again shortly.', true);
                } else {
                    contentEl.value = '';
                    counterEl.textContent = '0/' + maxChars;
                    setStatus('Notice submitted.');
                    await fetchMessages();
                }
            } catch {
                setStatus('Could not send right now. Try again.', true);
            }
            sendBtn.disabled = false;
        });

        document.getElementById('refreshBtn').addEventListener('click', fetchMessages);
        fetchMessages();
    </script>
</body>
</html>
""")


def render_drop_page(token: str) -> str:
    """Return the page for ``token``; the token is echoed but never validated here."""
    return _PAGE.substitute(
        token_html=escape_html(token),
        ttl_days=settings.drop_message_ttl_days,
        max_chars=settings.drop_message_max_chars,
    )
