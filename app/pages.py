"""
Bare page shells for the login and chat routes. The real front end is
served separately; these only give the redirects a target.
"""

from string import Template

PAGE_TITLES = {
    "en": {"login": "Please enter admin password", "chat": "AI Chat"},
    "cn": {"login": "请输入管理员密码", "chat": "AI 聊天"},
}

_LOGIN_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="$lang">
<head><meta charset="UTF-8"><title>$title</title></head>
<body>
  <h2>$title</h2>
  <input type="password" id="password-input">
  <button id="submit-password">OK</button>
  <p id="message"></p>
  <script>
    document.getElementById('submit-password').addEventListener('click', async () => {
      const response = await fetch('/authenticate', {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({password: document.getElementById('password-input').value})
      });
      if (response.ok) { window.location.href = '/$lang/chat'; }
      else { document.getElementById('message').textContent = (await response.json()).detail; }
    });
  </script>
</body>
</html>
""")

_CHAT_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="$lang">
<head><meta charset="UTF-8"><title>$title</title></head>
<body data-api="/api"><h1>$title</h1></body>
</html>
""")


def render_login_page(lang: str) -> str:
    return _LOGIN_TEMPLATE.substitute(lang=lang, title=PAGE_TITLES[lang]["login"])


def render_chat_page(lang: str) -> str:
    return _CHAT_TEMPLATE.substitute(lang=lang, title=PAGE_TITLES[lang]["chat"])
