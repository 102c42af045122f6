import warnings

# Suppress Google SDK FutureWarning messages about interpreter deprecation
# These clutter the CLI output when reconciling from older Pythons.
warnings.filterwarnings("ignore", category=FutureWarning, module="google.api_core")
warnings.filterwarnings("ignore", category=FutureWarning, module="google.cloud")
