import os
import json

DEFAULT_SETTINGS = {
    'testing_mode': False,
    # Squared content-space distance under which an anchor and an
    # observation centre count as the same place (~50 units).
    'proximity_distance_squared': 2500,
    'scan_padding': 50,
    'ink_sample_padding': 20,
    'candidate_limit': 3,
    'default_pen_color': '#000000',
}

def get_data_dir():
    """Get inkclock data directory, create if it doesn't exist"""
    data_dir = os.getenv('inkclock_data')
    if not data_dir:
        data_dir = os.path.expanduser('~/.inkclock')
    os.makedirs(data_dir, exist_ok=True)
    return data_dir

def get_config_file():
    """Settings file from the environment or next to the package"""
    return os.getenv('inkclock_config') or os.path.join(os.path.dirname(__file__), 'config.json')

def load_settings():
    """Load settings, falling back to defaults for anything missing"""
    settings = dict(DEFAULT_SETTINGS)
    try:
        with open(get_config_file(), 'r') as f:
            loaded = json.load(f)
    except (OSError, ValueError):
        return settings
    if isinstance(loaded, dict):
        settings.update({k: v for k, v in loaded.items() if k in DEFAULT_SETTINGS})
    return settings

def get_testing_mode():
    """Check if testing mode is enabled"""
    return bool(load_settings().get('testing_mode', False))
