"""Names derived from source tables and fields."""

import os


def decode_camel_case(name: str) -> str:
    """
    Convert a camelCase source field name to a snake_case column name.

    "firstName" -> "first_name", "barcodeID" -> "barcode_id",
    "HTTPStatus" -> "http_status".
    """
    out = []
    for i, c in enumerate(name):
        if c.isupper():
            prev = name[i - 1] if i > 0 else ""
            nxt = name[i + 1] if i + 1 < len(name) else ""
            if prev and (prev.islower() or prev.isdigit() or
                         (prev.isupper() and nxt.islower())):
                out.append("_")
            out.append(c.lower())
        else:
            out.append(c)
    return "".join(out)


def loading_table_name(table_name: str, prefix: str = "zzz___",
                       suffix: str = "___") -> str:
    return f"{prefix}{table_name}{suffix}"


def count_file_path(load_dir: str, table_name: str) -> str:
    return os.path.join(load_dir, f"{table_name}_count.txt")


def page_file_path(load_dir: str, table_name: str, page: int) -> str:
    return os.path.join(load_dir, f"{table_name}_{page}.json")


def supplementary_file_path(load_dir: str, table_name: str) -> str:
    return os.path.join(load_dir, f"{table_name}_test.json")
