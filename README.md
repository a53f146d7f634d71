# wapfyi

A small URL shortener with a web form and redirects, built on Flask. Every
form submission must carry a solved proof-of-work challenge. The check is a
simple 32-bit string hash whose hex form has to end in enough zeros, so even
very old browsers can solve it in script.

## Features

- Short paths of 1–50 characters from `[a-zA-Z0-9_-]`. If the path is left
  empty, a random 5-character path from `[a-z0-9]` is picked.
- Target URLs must use `http` or `https`, have a host containing a dot, and
  be at most 200 bytes long. If a URL is not valid as given but is valid
  with `http://` in front, `http://` is added.
- A challenge can be used only once.
- Clients whose `Accept` header contains `text/vnd.wap.wml` get a 301
  redirect to a WAP site from the home page. For missing files they get
  `404.wml` from the templates directory.
- Storage is kept in memory by default. Redis is used when you enable it.

## Installation

```
pip install .
```

## Running

```
wapfyi [--host HOST] [--port PORT] [--templates DIR]
```

The defaults are `0.0.0.0`, port `8080` and the `templates` directory. The
server uses Flask's built-in server.

### Routes

- `GET /` and `GET /shorten.html` issue a new challenge and render
  `index.html`.
- `POST /shorten.html` reads the form fields `fullURL`, `path`,
  `pow_challenge` and `pow_solution`. It then renders `index.html` with
  either an error message or the success message
  `URL shortened successfully! Your short URL is: wap.fyi/<path>`.
- `GET /<path>` works in this order:
  - A stored short path of up to 20 characters gets a 301 redirect to its URL.
  - Otherwise the matching file from the templates directory is served.
  - Paths that try to leave that directory get a 404.

### Templates

`render_index(templates_dir, data)` renders `index.html` from a
`TemplateData`. The template syntax is a small subset:

- `{{.Field}}` inserts a value, HTML-escaped.
- `{{if .Field}}…{{else}}…{{end}}` is a conditional.
- `{{/* … */}}` is a comment.
- `{{- ` and ` -}}` trim the whitespace next to an action.

The available fields are `PoWChallenge`, `FullURL`, `Path`, `ErrorMessage`
and `SuccessMessage`. Any other action raises `ValueError`.

### Storage

`wapfyi.storage.create_storage` reads these environment variables to choose
the backend:

| Variable         | Meaning                                  |
|------------------|------------------------------------------|
| `USE_REDIS`      | set to `true` to use Redis               |
| `ENV`            | `production` also selects Redis          |
| `REDIS_ADDR`     | `host:port`, default `localhost:6379`    |
| `REDIS_PASSWORD` | Redis password, empty by default         |

If Redis cannot be reached, `create_storage` falls back to `LocalMapStorage`,
which keeps everything in memory. Redis entries expire after 24 hours.
Backend failures are raised as `StorageError`.

## Library use

```python
from wapfyi.pow import verify_proof_of_work
from wapfyi.storage import LocalMapStorage
from wapfyi.app import ShortenerService, create_app

with LocalMapStorage() as store:
    service = ShortenerService(store)
    challenge = service.new_challenge()
    solution = next(n for n in range(10**7)
                    if verify_proof_of_work(challenge, n, 4))
    service.verify_challenge(challenge, str(solution))
    short_path = service.shorten("example.com/page", "")
    app = create_app(store, "templates")
```

`verify_proof_of_work(challenge, solution, difficulty)` hashes the challenge
with the decimal solution appended. It returns true when the 8-digit hex hash
ends in at least `difficulty` zeros. A difficulty of zero or less means 4.

`ShortenerService.verify_challenge` and `ShortenerService.shorten` raise
`ValueError` with a message the user can act on. `wapfyi.app` also provides
`is_valid_url`, `is_valid_path`, `generate_random_string` and
`generate_random_path`.

## What is not included

- The package ships no templates directory. You must supply `index.html`,
  with its form and client-side proof-of-work script, plus any `404.wml` or
  other static files.
- In-memory storage never expires entries and is lost when the process ends.

## Tests

```
pip install .[test]
pytest
```