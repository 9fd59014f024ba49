from typing import Any, Dict

import requests

from bc2notion.utils.logs import log_message


class PreFlightCheckError(Exception):
    """Custom exception for pre-flight check failures."""
    pass


def run_pre_flight_checks(config: Dict[str, Any], *, session: Any = requests) -> None:
    """
    Verifies that both APIs are reachable with the configured credentials
    before any page is created.

    Args:
        config: The application configuration dictionary.
        session: Object exposing ``get`` (``requests`` or a ``Session``).

    Raises:
        PreFlightCheckError: If any check fails.
    """
    log_message("Running pre-flight checks...")

    notion = config.get("notion", {})
    basecamp = config.get("basecamp", {})
    if not notion.get("api_key"):
        raise PreFlightCheckError("Notion API key not found in the configuration (NOTION_API_KEY).")
    if not notion.get("root_page_id"):
        raise PreFlightCheckError("Notion root page id not found in the configuration (NOTION_ROOT_PAGE_ID).")
    if not basecamp.get("access_token") or not basecamp.get("account_id"):
        raise PreFlightCheckError("Basecamp access token or account id missing (BASECAMP_ACCESS_TOKEN, BASECAMP_ACCOUNT_ID).")

    notion_base = (notion.get("base_url") or "https://api.notion.com/v1").rstrip("/")
    notion_headers = {
        "Authorization": f"Bearer {notion['api_key']}",
        "Notion-Version": notion.get("version") or "2022-06-28",
    }

    # Check 1: Notion token and access to the root page
    root_url = f"{notion_base}/pages/{notion['root_page_id']}"
    try:
        response = session.get(root_url, headers=notion_headers, timeout=10)
        response.raise_for_status()
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code == 401:
            raise PreFlightCheckError("The Notion API key is invalid.")
        if e.response is not None and e.response.status_code == 404:
            raise PreFlightCheckError("The Notion root page was not found or is not shared with the integration.")
        raise PreFlightCheckError(f"Unexpected error while checking the Notion root page: {e}")
    except requests.RequestException as e:
        raise PreFlightCheckError(f"Network error while connecting to Notion: {e}")

    # Check 2: Basecamp token
    api_base = (basecamp.get("api_base") or "https://3.basecampapi.com").rstrip("/")
    projects_url = f"{api_base}/{basecamp['account_id']}/projects.json"
    try:
        response = session.get(projects_url, headers={"Authorization": f"Bearer {basecamp['access_token']}"}, timeout=10)
        response.raise_for_status()
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code == 401:
            raise PreFlightCheckError("The Basecamp access token is invalid or has expired.")
        raise PreFlightCheckError(f"Unexpected error while checking the Basecamp API: {e}")
    except requests.RequestException as e:
        raise PreFlightCheckError(f"Network error while connecting to Basecamp: {e}")

    log_message("Pre-flight checks passed successfully.")
