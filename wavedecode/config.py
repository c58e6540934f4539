import os

# --- Time Quantization ---
# Tolerance (in samples) when mapping a time in seconds onto a sample index.
# Absorbs float accumulation from repeated cursor additions.
SAMPLE_EPSILON = 1e-6

# --- Sample Buffers ---
INITIAL_BUFFER_CAPACITY = 4096  # samples, grows x2 when full

# --- Simulated Streams ---
SINE_CHUNK_SAMPLES = 1024     # samples per generated chunk
SINE_GENERATION_PERIOD = 1.0  # seconds between chunks (worker thread)

# --- Logging ---
# Can be overridden by env vars (or a .env file loaded by the CLI)
LOG_LEVEL = os.getenv("WAVEDECODE_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
