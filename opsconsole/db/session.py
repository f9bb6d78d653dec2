from opsconsole.db.backend import Backend, build_backend

# Global backend instance; routes receive it through `get_backend` so tests can override it.
backend: Backend = build_backend()


def get_backend() -> Backend:
    return backend
