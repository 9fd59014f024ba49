"""
Entry point for the Basecamp to Notion migration tool.
"""

import signal

from bc2notion.migration_tool import BasecampMigrationTool
from bc2notion.utils.pre_flight_checks import PreFlightCheckError, run_pre_flight_checks

CONFIG_FILE = "config/migration_config.json"


def main():
    """
    Main function to run the Basecamp to Notion migration tool.
    """
    tool = BasecampMigrationTool(config_file=CONFIG_FILE)
    tool.log_message("Starting Basecamp to Notion migration.")

    def handle_interrupt(signum, frame):
        if tool.run_context.shutdown_requested:
            raise KeyboardInterrupt
        tool.log_message("Interrupt received; finishing the current request and stopping (press Ctrl+C again to abort).", level="WARNING")
        tool.run_context.request_shutdown()

    signal.signal(signal.SIGINT, handle_interrupt)

    if tool.dry_run:
        tool.log_message("Dry-run mode: no page will be created in Notion.", level="WARNING")
    else:
        try:
            run_pre_flight_checks(tool.config)
        except PreFlightCheckError as e:
            tool.log_message(f"Pre-flight checks failed: {e}", level="ERROR")
            tool.finish()
            return

    summary = tool.run()
    tool.log_message(f"Migration process finished. Manual uploads pending: {summary['manual_uploads']}")


if __name__ == "__main__":
    main()
