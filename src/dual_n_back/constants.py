from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = BASE_DIR / "data"
SETTINGS_FILE = DATA_DIR / "settings.json"

# Stimuli
AUDIO_LETTERS = ("A", "B", "C", "D", "E", "F", "G", "H", "I", "J", "K", "L")
VISUAL_GRID_SIZE = 9  # 3x3 grid

# Practice session is pinned to these
PRACTICE_MODE = "single-visual"
PRACTICE_N_LEVEL = 1
PRACTICE_NUM_TRIALS = 7

# Defaults for a regular session
DEFAULT_MODE = "single-visual"
DEFAULT_N_LEVEL = 2
DEFAULT_NUM_TRIALS = 20
DEFAULT_STIMULUS_DURATION_MS = 3000
INTER_TRIAL_INTERVAL_MS = 1000

# Accepted configuration ranges
MIN_N_LEVEL = 1
MAX_N_LEVEL = 10
MIN_TRIALS = 1
MAX_TRIALS = 100
MIN_STIMULUS_DURATION_MS = 500
MAX_STIMULUS_DURATION_MS = 10000

# Adaptive difficulty
ADAPTIVE_UPPER_THRESHOLD = 0.8
ADAPTIVE_LOWER_THRESHOLD = 0.6
ADAPTIVE_MAX_LEVEL = 8

# Preference store keys
SETTINGS_KEY = "app-settings"
FONT_SIZES = ("default", "large", "xlarge")
