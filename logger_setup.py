# logger_setup.py

import logging
import os
import json

LOGGER_NAME = "glitchfield"


def load_config(config_path='config.json'):
    """
    Loads the JSON run configuration.

    Data Contract:
    - Inputs: config_path (str) - Path to the configuration file.
    - Outputs: dict - The parsed configuration.
    - Side Effects: Logs and re-raises if the file is missing or malformed.
    """
    logger = logging.getLogger(LOGGER_NAME)
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found at {config_path}.")
        raise
    except json.JSONDecodeError:
        logger.error(f"Error decoding JSON from {config_path}.")
        raise
    return config


def setup_logging(config_path='config.json', log_root='runs'):
    """
    Sets up logging for the application.

    Reads logging configuration, creates a run-specific log directory, and
    configures a dedicated application logger (not the root logger) to output
    to both the console and a log file. This keeps numba's compiler chatter
    out of the simulation log.

    Data Contract:
    - Inputs:
        - config_path (str) - Path to the configuration file.
        - log_root (str) - Directory under which run folders are created.
    - Outputs: str - Path of the log file.
    - Side Effects:
        - Configures the "glitchfield" logger.
        - Creates directories for log files.
    - Invariants: Assumes the config file contains 'run_id' and a 'logging' dictionary
      with 'level' and 'format'.
    """
    config = load_config(config_path)

    run_id = config['run_id']
    log_config = config['logging']

    # --- Get a dedicated logger for the application ---
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_config['level'])

    # --- Prevent logs from propagating to the root logger ---
    logger.propagate = False

    # --- Create directories for logs ---
    log_dir = os.path.join(log_root, run_id)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'simulation.log')

    # --- Create formatter and handlers ---
    formatter = logging.Formatter(log_config['format'])

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(formatter)

    # Console handler
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    # --- Add handlers to the logger ---
    # Clear existing handlers to avoid duplication if this function is called again
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)

    logger.info(f"Logging initialized. Run ID: {run_id}. Log file: {log_file}")
    return log_file
