from __future__ import annotations


def render_homepage(*, app_name: str) -> str:
    return f"""
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{app_name} Activity</title>
  <style>
    :root {{
      --bg: #eef2f3;
      --panel: #ffffff;
      --ink: #1c2a38;
      --muted: #5d6d79;
      --line: #d5dde2;
      --accent: #146c94;
      --ok: #1f7a42;
      --err: #a4202c;
      --warn: #8a6a00;
    }}
    * {{ box-sizing: border-box; }}
    body {{
      margin: 0;
      font-family: system-ui, sans-serif;
      color: var(--ink);
      background: var(--bg);
    }}
    .wrap {{
      max-width: 760px;
      margin: 22px auto 40px;
      padding: 0 16px;
      display: grid;
      gap: 16px;
    }}
    .card {{
      background: var(--panel);
      border: 1px solid var(--line);
      border-radius: 16px;
      padding: 16px;
    }}
    .hero {{
      display: flex;
      justify-content: space-between;
      align-items: center;
    }}
    .badge {{
      background: var(--accent);
      color: #fff;
      border-radius: 999px;
      padding: 4px 12px;
      font-weight: 600;
    }}
    ul {{ list-style: none; margin: 0; padding: 0; }}
    li {{
      display: flex;
      justify-content: space-between;
      gap: 12px;
      padding: 10px 0;
      border-bottom: 1px solid var(--line);
    }}
    li:last-child {{ border-bottom: none; }}
    .muted {{ color: var(--muted); font-size: 0.9rem; }}
    .PROCESSING {{ color: var(--warn); }}
    .AWAITING_FEEDBACK {{ color: var(--warn); }}
    .COMPLETED {{ color: var(--ok); }}
    .FAILED {{ color: var(--err); }}
    a {{ color: var(--accent); }}
    button {{
      border: 1px solid var(--line);
      background: transparent;
      border-radius: 8px;
      cursor: pointer;
    }}
  </style>
</head>
<body>
  <main class="wrap">
    <section class="card hero">
      <h1>Background Activity</h1>
      <span class="badge" id="active-count">0 active</span>
    </section>
    <section class="card">
      <ul id="activity"><li class="muted">No background tasks.</li></ul>
    </section>
  </main>
  <script>
    const list = document.getElementById("activity");
    const badge = document.getElementById("active-count");

    function escapeHtml(value) {{
      return String(value ?? "").replace(/[&<>"']/g, (ch) => ({{
        "&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#39;"
      }})[ch]);
    }}

    function renderItem(item) {{
      const title = item.navigate_to
        ? `<a href="${{escapeHtml(item.navigate_to)}}">${{escapeHtml(item.title)}}</a>`
        : escapeHtml(item.title);
      const detail = item.error || item.subtitle || "";
      const estimate = item.estimate ? ` &middot; ~${{escapeHtml(item.estimate)}}` : "";
      return `<li>
        <div>
          <div>${{title}}</div>
          <div class="muted">${{escapeHtml(detail)}}${{estimate}}</div>
        </div>
        <div>
          <span class="${{escapeHtml(item.status)}}">${{escapeHtml(item.status)}}</span>
          <button data-task="${{escapeHtml(item.task_id)}}" title="Dismiss">&times;</button>
        </div>
      </li>`;
    }}

    async function refresh() {{
      const response = await fetch("/tasks");
      if (!response.ok) return;
      const feed = await response.json();
      badge.textContent = `${{feed.active_count}} active`;
      list.innerHTML = feed.items.length
        ? feed.items.map(renderItem).join("")
        : '<li class="muted">No background tasks.</li>';
    }}

    list.addEventListener("click", async (event) => {{
      const taskId = event.target.dataset.task;
      if (!taskId) return;
      await fetch(`/tasks/${{encodeURIComponent(taskId)}}`, {{ method: "DELETE" }});
      refresh();
    }});

    refresh();
    setInterval(refresh, 2000);
  </script>
</body>
</html>
"""
