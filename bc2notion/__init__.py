"""
Top-level package for the Basecamp → Notion migration utility.

This package bundles all components required to read project content
from the Basecamp 3 API, convert its HTML to Notion blocks, re-host
private attachments, deliver the blocks under Notion's request limits
and checkpoint progress so that an interrupted run can be resumed.
Modules are split into subpackages:

* :mod:`bc2notion.extractors` – paginated Basecamp API reads
* :mod:`bc2notion.parsers` – HTML to Notion rich text / block converters
* :mod:`bc2notion.assets` – attachment URL resolution and downloads
* :mod:`bc2notion.migrators` – Notion API interactions, batching, retries
* :mod:`bc2notion.database` – the duckdb progress store
* :mod:`bc2notion.utils` – logging, error reports and shared run state

Each layer has no direct knowledge of configuration or execution
strategy; orchestration is handled in :mod:`bc2notion.migration_tool`.
"""
