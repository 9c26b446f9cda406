"""Helpers that read object keys as a ``/``-separated folder tree."""


def is_folder(key):
    return key.endswith("/")


def base_name(key):
    if is_folder(key):
        return key[:-1].rsplit("/", 1)[-1] + "/"
    return key.rsplit("/", 1)[-1]


def parent_prefix(key):
    trimmed = key[:-1] if is_folder(key) else key
    if "/" not in trimmed:
        return ""
    return trimmed.rsplit("/", 1)[0] + "/"


def join_name(parent, name, folder=False):
    key = (parent or "") + name
    if folder and not key.endswith("/"):
        key += "/"
    return key


def breadcrumbs(prefix):
    crumbs = [("Root", "")]
    current = ""
    for part in [p for p in (prefix or "").strip("/").split("/") if p]:
        current += part + "/"
        crumbs.append((part, current))
    return crumbs


def rename_target(old_key, new_name):
    """Resolve the key a rename of ``old_key`` to ``new_name`` lands on.

    A bare name stays in the same parent folder; a name with a slash is taken
    as a full key. Folders always rename to folders.
    """
    if "/" in new_name.rstrip("/"):
        new_key = new_name
    else:
        new_key = join_name(parent_prefix(old_key), new_name)
    if is_folder(old_key) and not new_key.endswith("/"):
        new_key += "/"
    return new_key
