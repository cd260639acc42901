"""
pages.py — Page shells behind the navigation gate.

  GET /login  — password form (public; redirects to / when already signed in)
  GET /       — dashboard shell (gated; redirects to /login without a session)

The gate itself lives in core/gate.py. These pages carry no trace data:
the dashboard runtime (tracemap.dashboard) fetches traces through the
/api routes and renders them onto its own drawing surface.
"""

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter(tags=["pages"], include_in_schema=False)

_LOGIN_HTML = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Location Dashboard — Login</title></head>
<body>
  <h2>Location Dashboard</h2>
  <p>Enter password to continue</p>
  <form id="login">
    <input id="password" type="password" autocomplete="current-password" required placeholder="Password">
    <button type="submit">Login</button>
  </form>
  <p id="error" role="alert"></p>
  <script>
    const form = document.getElementById('login');
    const error = document.getElementById('error');
    let pending = false;
    form.addEventListener('submit', async (e) => {
      e.preventDefault();
      if (pending) return;
      pending = true;
      try {
        const r = await fetch('/api/auth', {
          method: 'POST',
          headers: {'Content-Type': 'application/json'},
          body: JSON.stringify({password: document.getElementById('password').value}),
        });
        if (r.ok) { window.location.assign('/'); return; }
        error.textContent = r.status === 401 ? 'Invalid password' : 'Server error, please try again later';
      } catch (err) {
        error.textContent = 'Server error, please try again later';
      } finally {
        pending = false;
      }
      setTimeout(() => { error.textContent = ''; }, 3000);
    });
  </script>
</body>
</html>
"""

_DASHBOARD_HTML = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Location Traces Dashboard</title></head>
<body>
  <h1>Location Traces Dashboard</h1>
  <p>View location traces for users by selecting a username.</p>
  <button id="logout">Logout</button>
  <script>
    document.getElementById('logout').addEventListener('click', async () => {
      try { await fetch('/api/auth', {method: 'DELETE'}); } catch (err) {}
      window.location.assign('/login');
    });
  </script>
</body>
</html>
"""


@router.get("/login", response_class=HTMLResponse)
async def login_page():
    return _LOGIN_HTML


@router.get("/", response_class=HTMLResponse)
async def dashboard_page():
    return _DASHBOARD_HTML
