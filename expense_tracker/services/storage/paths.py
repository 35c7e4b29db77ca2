"""Document store layout for one user's data."""


def user_root(user_id: str) -> str:
    if not user_id or "/" in user_id:
        raise ValueError(f"Invalid user id: {user_id!r}")
    return f"users/{user_id}"


def expenses_path(user_id: str) -> str:
    return f"{user_root(user_id)}/expenses"


def expense_path(user_id: str, expense_id: str) -> str:
    return f"{expenses_path(user_id)}/{expense_id}"


def categories_path(user_id: str) -> str:
    return f"{user_root(user_id)}/categories"


def category_path(user_id: str, category_id: str) -> str:
    return f"{categories_path(user_id)}/{category_id}"


def budget_path(user_id: str) -> str:
    return f"{user_root(user_id)}/settings/budget"


def audit_path(user_id: str, event_id: str) -> str:
    return f"{user_root(user_id)}/audit/{event_id}"
