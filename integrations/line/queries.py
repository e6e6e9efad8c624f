"""SQL queries for the LINE backup database.

The snapshot is opened read-only; every query here is a SELECT. User input
is never interpolated into query strings, all values are passed as
parameterized query arguments.
"""

REQUIRED_TABLES = ("chat", "chat_history")

QUERIES = {
    "chats": """
        SELECT *
        FROM chat
        ORDER BY last_created_time DESC
    """,
    "groups": """
        SELECT id, name
        FROM "groups"
    """,
    "messages": """
        SELECT *
        FROM chat_history
        WHERE chat_id = ?
        ORDER BY created_time DESC, id DESC
        LIMIT ? OFFSET ?
    """,
    "all_messages": """
        SELECT *
        FROM chat_history
        WHERE chat_id = ?
        ORDER BY created_time ASC, id ASC
    """,
    # instr() keeps the match case-sensitive, unlike LIKE.
    # A NULL filter argument disables that filter; an empty needle matches all.
    "search": """
        SELECT id, chat_id, from_mid, content, created_time
        FROM chat_history
        WHERE (? = '' OR (content IS NOT NULL AND instr(content, ?) > 0))
          AND (? IS NULL OR CAST(type AS INTEGER) = ?)
          AND (? IS NULL OR CAST(attachement_type AS INTEGER) = ?)
          AND (? IS NULL OR chat_id = ?)
        ORDER BY created_time DESC, id DESC
        LIMIT ?
    """,
    "type_counts": """
        SELECT type, COUNT(*) AS count,
               GROUP_CONCAT(DISTINCT attachement_type) AS related
        FROM chat_history
        GROUP BY type
        ORDER BY count DESC
    """,
    "attachment_type_counts": """
        SELECT attachement_type, COUNT(*) AS count,
               GROUP_CONCAT(DISTINCT type) AS related
        FROM chat_history
        GROUP BY attachement_type
        ORDER BY count DESC
    """,
    "schema": """
        SELECT name, sql
        FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """,
    "table_names": """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
    """,
}


def get_query(name: str) -> str:
    """Get SQL query by name.

    Args:
        name: Query name (chats, groups, messages, all_messages, search, ...)

    Returns:
        SQL query string

    Raises:
        KeyError: If query name not found
    """
    return QUERIES[name]
