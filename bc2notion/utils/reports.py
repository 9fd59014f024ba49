"""
Generation of the manual upload CSV.

The :func:`generate_manual_uploads_csv` helper writes one row for every
asset that could not be re-hosted in Notion, together with the Notion
page where a fallback link was left.  Operators use the file to upload
those files by hand after the run.
"""

from __future__ import annotations

import csv
import os
from typing import Dict, Iterable


def generate_manual_uploads_csv(
    entries: Iterable[Dict[str, str]], *, out_path: str = "reports/manual_uploads.csv"
) -> str:
    """Write the manual upload list to ``out_path``.

    Parameters
    ----------
    entries:
        Iterable of dictionaries with ``url``, ``notion_page_id`` and
        ``context`` keys, as returned by
        :meth:`bc2notion.utils.run_context.RunContext.manual_uploads`.
    out_path:
        Location of the CSV file to be written.  The parent directory is
        created automatically.

    Returns
    -------
    str
        The path of the generated CSV file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["URL", "NotionPageURL", "Context"])
        for entry in entries:
            page_id = (entry.get("notion_page_id") or "").replace("-", "")
            page_url = f"https://www.notion.so/{page_id}" if page_id else ""
            writer.writerow([entry.get("url", ""), page_url, entry.get("context", "")])
    return out_path
