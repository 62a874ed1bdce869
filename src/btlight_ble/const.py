BASE_UUID_FORMAT = "0000{}-0000-1000-8000-00805f9b34fb"

# "ffb0" - UAC088 lamps, "ffe0" - generic HM-10 style modules
FALLBACK_SERVICE_UUIDS = ("ffe0", "ffb0")

POWER_ON_COMMAND = bytes([0xCC, 0x23, 0x33])
POWER_OFF_COMMAND = bytes([0xCC, 0x24, 0x33])
RGB_COMMAND_PREFIX = 0x56
RGB_COMMAND_SUFFIX = bytes([0x00, 0xF0, 0xAA])

DEFAULT_RESOLVE_ATTEMPTS = 8
DEFAULT_RESOLVE_DELAY = 0.4
RECONNECT_PAUSE = 0.3
RECONNECT_SETTLE = 0.7

DEFAULT_CONNECT_INTERVAL = 12.0
DEFAULT_CONNECT_TIMEOUT = 30.0
GATT_SETTLE_DELAY = 1.0

DEFAULT_RSSI_MIN = -85
DEFAULT_CONNECT_MIN_RSSI = -85
DEFAULT_METRICS_INTERVAL = 60.0
MIN_METRICS_INTERVAL = 15.0

RSSI_FLOOR = -120
RSSI_CEILING = 0
RSSI_GOOD = -70
RSSI_OK = -85

MIN_KELVIN = 2000
MAX_KELVIN = 6500

DEFAULT_NAME = "BT Light"

# Host capability names
CAPABILITY_ONOFF = "onoff"
CAPABILITY_DIM = "dim"
CAPABILITY_HUE = "light_hue"
CAPABILITY_SATURATION = "light_saturation"
CAPABILITY_TEMPERATURE = "light_temperature"
CAPABILITY_MODE = "light_mode"

# Host setting keys
SETTING_SERVICE_UUID = "service_uuid"
SETTING_CHAR_UUID = "char_uuid"
SETTING_RSSI_MIN = "rssi_min"
SETTING_CONNECT_MIN_RSSI = "connect_min_rssi"
SETTING_METRICS_INTERVAL = "metrics_interval_s"
