"""Status page with inline CSS and vanilla JS, refreshed by the event stream."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>ClawDE</title>
<style>
  :root { --bg: #0d1117; --surface: #161b22; --border: #30363d; --text: #e6edf3;
          --muted: #8b949e; --ok: #3fb950; --bad: #f85149; }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 960px; margin: 0 auto; padding: 24px 16px; }
  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 20px; }
  header h1 { font-size: 20px; }
  #live { font-size: 12px; color: var(--muted); }
  #live.on { color: var(--ok); }
  #live.err { color: var(--bad); }
  section { background: var(--surface); border: 1px solid var(--border); border-radius: 8px;
            padding: 16px; margin-bottom: 16px; }
  section h2 { font-size: 15px; margin-bottom: 8px; }
  .row { display: flex; gap: 10px; font-size: 13px; padding: 3px 0; }
  .row code { color: var(--muted); }
  .status { font-size: 11px; text-transform: uppercase; color: var(--muted); min-width: 90px; }
  .stale { color: var(--bad); font-size: 11px; }
</style>
</head>
<body>
<div class="container">
  <header><h1 id="name">ClawDE</h1><span id="live">connecting</span></header>
  <section><h2>Agents</h2><div id="agents"></div></section>
  <section><h2>Tasks</h2><div id="tasks"></div></section>
  <section><h2>Changes</h2><div id="changes"></div></section>
  <section><h2>Activity</h2><div id="events"></div></section>
</div>
<script>
function esc(s) {
  const d = document.createElement('div');
  d.textContent = s == null ? '' : String(s);
  return d.innerHTML;
}

async function getJSON(path) {
  const res = await fetch(path);
  return res.ok ? res.json() : null;
}

function rows(items, render) {
  return items && items.length ? items.map(render).join('') : '<div class="row">None</div>';
}

async function load() {
  const [project, tasks, changes, events] = await Promise.all([
    getJSON('/api/project'), getJSON('/api/tasks'), getJSON('/api/changes'), getJSON('/api/events'),
  ]);
  if (project) {
    document.getElementById('name').textContent = project.project.name;
    document.getElementById('agents').innerHTML = rows(project.agents, a =>
      `<div class="row"><span class="status">${esc(a.connection_status)}</span>${esc(a.name)} <code>${esc(a.model)}</code></div>`);
  }
  document.getElementById('tasks').innerHTML = rows(tasks && tasks.tasks, t =>
    `<div class="row"><span class="status">${esc(t.status)}</span>${esc(t.title)} <code>${esc(t.id)}</code></div>`);
  document.getElementById('changes').innerHTML = rows(changes && changes.changes, c =>
    `<div class="row"><span class="status">${esc(c.status)}</span>${esc(c.name)}` +
    (c.artifacts.some(a => a.stale) ? ' <span class="stale">tasks stale</span>' : '') + '</div>');
  document.getElementById('events').innerHTML = rows(events && events.events.slice(0, 15), e =>
    `<div class="row"><span class="status">${esc(e.type)}</span>${esc(e.payload.message || '')} <code>${esc(e.payload.author || '')}</code></div>`);
}

const live = document.getElementById('live');
const source = new EventSource('/api/events/stream');
source.addEventListener('init', () => { live.textContent = 'live'; live.className = 'on'; load(); });
source.addEventListener('update', load);
source.addEventListener('error', ev => {
  live.textContent = ev.data ? JSON.parse(ev.data).error : 'reconnecting';
  live.className = 'err';
});
</script>
</body>
</html>"""
