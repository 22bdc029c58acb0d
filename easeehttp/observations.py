"""Observation table and decoder for Easee charger telemetry.

Easee reports charger state as numbered observations. The table below maps
each observation id to its name, wire data type and unit. Human readable
texts for enumerated values live in ``ENUM_TEXTS`` keyed by observation id.

https://developer.easee.com/docs/observation-ids
https://developer.easee.com/docs/enumerations
"""

from __future__ import annotations

import datetime
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

_LOGGER = logging.getLogger(__name__)

MODE_ID = "id"
MODE_NAME = "name"

ONLINE_WINDOW = datetime.timedelta(minutes=5)


class DataType(enum.IntEnum):
    """Wire data types used by the Easee observation stream."""

    BINARY = 1
    BOOLEAN = 2
    DOUBLE = 3
    INTEGER = 4
    POSITION = 5
    STRING = 6
    STATISTICS = 7
    JSON = 8

    @property
    def label(self) -> str:
        """Return the name used by the Easee documentation."""
        if self is DataType.JSON:
            return "JSON"
        return self.name.capitalize()


@dataclass(frozen=True)
class ObservationDefinition:
    """Static description of one observation id."""

    observation_id: int
    name: str
    data_type: DataType
    unit: str | None = None
    alternate_name: str | None = None


@dataclass(frozen=True)
class ParsedObservation:
    """Typed observation decoded from a raw telemetry value."""

    id: Any
    observation_id: int | None
    name: str
    data_type: DataType | None
    value: Any
    value_text: str | None
    unit: str | None
    timestamp: str
    parse_error: str | None = None
    charger_id: str | None = None

    @property
    def data_type_name(self) -> str:
        """Return the data type label or Unknown."""
        if self.data_type is None:
            return "Unknown"
        return self.data_type.label


_B = DataType.BINARY
_BOOL = DataType.BOOLEAN
_D = DataType.DOUBLE
_I = DataType.INTEGER
_S = DataType.STRING
_J = DataType.JSON

OBSERVATIONS: tuple[ObservationDefinition, ...] = (
    ObservationDefinition(1, "SelfTestResult", _B),
    ObservationDefinition(2, "SelfTestDetails", _J),
    ObservationDefinition(10, "WiFiEvent", _I),
    ObservationDefinition(11, "ChargerOfflineReason", _I),
    ObservationDefinition(15, "LocalPreAuthorizeEnabled", _BOOL),
    ObservationDefinition(16, "LocalAuthorizeOfflineEnabled", _BOOL),
    ObservationDefinition(17, "AllowOfflineTxForUnknownId", _BOOL),
    ObservationDefinition(18, "ErraticEvMaxToggles", _I),
    ObservationDefinition(19, "BackplateType", _I),
    ObservationDefinition(20, "SiteStructure", _J),
    ObservationDefinition(21, "DetectedPowerGridType", _I),
    ObservationDefinition(22, "CircuitMaxCurrentP1", _D, "A"),
    ObservationDefinition(23, "CircuitMaxCurrentP2", _D, "A"),
    ObservationDefinition(24, "CircuitMaxCurrentP3", _D, "A"),
    ObservationDefinition(25, "Location", DataType.POSITION),
    ObservationDefinition(26, "SiteIDString", _S),
    ObservationDefinition(27, "SiteIDNumeric", _I),
    ObservationDefinition(28, "RfidTimeoutAuth", _I),
    ObservationDefinition(30, "LockCablePermanently", _BOOL),
    ObservationDefinition(31, "IsEnabled", _BOOL),
    ObservationDefinition(32, "TemperatureMonitorState", _I),
    ObservationDefinition(33, "CircuitSequenceNumber", _I),
    ObservationDefinition(34, "SinglePhaseNumber", _I),
    ObservationDefinition(35, "Enable3Phases_DEPRECATED", _BOOL),
    ObservationDefinition(36, "WiFiSSID", _S),
    ObservationDefinition(37, "EnableIdleCurrent", _BOOL),
    ObservationDefinition(38, "PhaseMode", _I),
    ObservationDefinition(40, "LedStripBrightness", _I),
    ObservationDefinition(41, "LocalAuthorizationRequired", _BOOL),
    ObservationDefinition(42, "AuthorizationRequired", _BOOL),
    ObservationDefinition(43, "RemoteStartRequired", _BOOL),
    ObservationDefinition(44, "SmartButtonEnabled", _BOOL),
    ObservationDefinition(45, "OfflineChargingMode", _I),
    ObservationDefinition(46, "LEDMode", _I),
    ObservationDefinition(47, "MaxChargerCurrent", _D, "A"),
    ObservationDefinition(48, "DynamicChargerCurrent", _D, "A"),
    ObservationDefinition(50, "MaxCurrentOfflineFallback_P1", _I),
    ObservationDefinition(51, "MaxCurrentOfflineFallback_P2", _I),
    ObservationDefinition(52, "MaxCurrentOfflineFallback_P3", _I),
    ObservationDefinition(54, "ReleaseCableAtPowerOff", _B),
    ObservationDefinition(62, "ChargingSchedule", _J),
    ObservationDefinition(65, "PairedEqualizer", _B),
    ObservationDefinition(68, "WiFiAPEnabled", _BOOL),
    ObservationDefinition(69, "PairedUserIDToken", _S),
    ObservationDefinition(70, "CircuitTotalAllocatedPhaseConductorCurrent_L1", _D, "A"),
    ObservationDefinition(71, "CircuitTotalAllocatedPhaseConductorCurrent_L2", _D, "A"),
    ObservationDefinition(72, "CircuitTotalAllocatedPhaseConductorCurrent_L3", _D, "A"),
    ObservationDefinition(73, "CircuitTotalPhaseConductorCurrent_L1", _D, "A"),
    ObservationDefinition(74, "CircuitTotalPhaseConductorCurrent_L2", _D, "A"),
    ObservationDefinition(75, "CircuitTotalPhaseConductorCurrent_L3", _D, "A"),
    ObservationDefinition(76, "NumberOfCarsConnected", _I),
    ObservationDefinition(77, "NumberOfCarsCharging", _I),
    ObservationDefinition(78, "NumberOfCarsInQueue", _I),
    ObservationDefinition(79, "NumberOfCarsFullyCharged", _I),
    ObservationDefinition(80, "SoftwareRelease", _I),
    ObservationDefinition(81, "ICCID", _S),
    ObservationDefinition(82, "ModemFwId", _S),
    ObservationDefinition(83, "OTAErrorCode", _I),
    ObservationDefinition(84, "MobileNetworkOperator", _B),
    ObservationDefinition(89, "RebootReason", _I),
    ObservationDefinition(90, "PowerPCBVersion", _I),
    ObservationDefinition(91, "ComPCBVersion", _I),
    ObservationDefinition(96, "ReasonForNoCurrent", _I),
    ObservationDefinition(97, "LoadBalancingNumberOfConnectedChargers", _I),
    ObservationDefinition(98, "UDPNumOfConnectedNodes", _I),
    ObservationDefinition(99, "LocalConnection", _I),
    ObservationDefinition(100, "PilotMode", _S),
    ObservationDefinition(101, "CarConnected_DEPRECATED", _BOOL),
    ObservationDefinition(102, "SmartCharging", _BOOL),
    ObservationDefinition(103, "CableLocked", _BOOL),
    ObservationDefinition(104, "CableRating", _D),
    ObservationDefinition(105, "PilotHigh", _D),
    ObservationDefinition(106, "PilotLow", _D),
    ObservationDefinition(107, "BackPlateID", _S),
    ObservationDefinition(108, "UserIDTokenReversed", _S),
    ObservationDefinition(109, "ChargerOpMode", _I),
    ObservationDefinition(110, "OutputPhase", _I),
    ObservationDefinition(111, "DynamicCircuitCurrentP1", _D, "A"),
    ObservationDefinition(112, "DynamicCircuitCurrentP2", _D, "A"),
    ObservationDefinition(113, "DynamicCircuitCurrentP3", _D, "A"),
    ObservationDefinition(114, "OutputCurrent", _D, "A"),
    ObservationDefinition(115, "DeratedCurrent", _D, "A"),
    ObservationDefinition(116, "DeratingActive", _BOOL),
    ObservationDefinition(117, "DebugString", _S),
    ObservationDefinition(118, "ErrorString", _S),
    ObservationDefinition(119, "ErrorCode", _I),
    ObservationDefinition(120, "TotalPower", _D, "W"),
    ObservationDefinition(121, "SessionEnergy", _D, "kWh"),
    ObservationDefinition(122, "EnergyPerHour", _D, "kWh"),
    ObservationDefinition(123, "LegacyEvStatus", _I),
    ObservationDefinition(124, "LifetimeEnergy", _D, "kWh"),
    ObservationDefinition(125, "LifetimeRelaySwitches", _I),
    ObservationDefinition(126, "LifetimeHours", _I),
    ObservationDefinition(127, "DynamicCurrentOfflineFallback_DEPRICATED", _I),
    ObservationDefinition(128, "UserIDToken", _S),
    ObservationDefinition(129, "ChargingSession", _J),
    ObservationDefinition(130, "CellRSSI", _I),
    ObservationDefinition(131, "CellRAT", _I),
    ObservationDefinition(132, "WiFiRSSI", _I),
    ObservationDefinition(133, "CellAddress", _S),
    ObservationDefinition(134, "WiFiAddress", _S),
    ObservationDefinition(135, "WiFiType", _S),
    ObservationDefinition(136, "LocalRSSI", _I),
    ObservationDefinition(137, "MasterBackPlateID", _S),
    ObservationDefinition(138, "LocalTxPower", _I),
    ObservationDefinition(139, "LocalState", _S),
    ObservationDefinition(140, "FoundWiFi", _S),
    ObservationDefinition(141, "ChargerRAT", _I),
    ObservationDefinition(142, "CellularInterfaceErrorCount", _I),
    ObservationDefinition(143, "CellularInterfaceResetCount", _I),
    ObservationDefinition(144, "WifiInterfaceErrorCount", _I),
    ObservationDefinition(145, "WifiInterfaceResetCount", _I),
    ObservationDefinition(146, "LocalNodeType", _I),
    ObservationDefinition(147, "LocalRadioChannel", _I),
    ObservationDefinition(148, "LocalShortAddress", _I),
    ObservationDefinition(149, "LocalParentAddrOrNumOfNodes", _I),
    ObservationDefinition(150, "TempMax", _D, "°C"),
    ObservationDefinition(151, "TempAmbientPowerBoard", _D, "°C"),
    ObservationDefinition(152, "TempInputT2", _D, "°C"),
    ObservationDefinition(153, "TempInputT3", _D, "°C"),
    ObservationDefinition(154, "TempInputT4", _D, "°C"),
    ObservationDefinition(155, "TempInputT5", _D, "°C"),
    ObservationDefinition(160, "TempOutputN", _D, "°C"),
    ObservationDefinition(161, "TempOutputL1", _D, "°C"),
    ObservationDefinition(162, "TempOutputL2", _D, "°C"),
    ObservationDefinition(163, "TempOutputL3", _D, "°C"),
    ObservationDefinition(170, "TempAmbient", _D, "°C"),
    ObservationDefinition(171, "LightAmbient", _I),
    ObservationDefinition(172, "IntRelHumidity", _I),
    ObservationDefinition(173, "BackPlateLocked", _D),
    ObservationDefinition(174, "CurrentMotor", _D),
    ObservationDefinition(175, "BackPlateHallSensor", _I),
    ObservationDefinition(182, "InCurrent_T2", _D, "A"),
    ObservationDefinition(183, "InCurrent_T3", _D, "A"),
    ObservationDefinition(184, "InCurrent_T4", _D, "A"),
    ObservationDefinition(185, "InCurrent_T5", _D, "V"),
    ObservationDefinition(190, "InVolt_T1_T2", _D, "V", "inVoltageT1T2"),
    ObservationDefinition(191, "InVolt_T1_T3", _D, "V", "inVoltageT1T3"),
    ObservationDefinition(192, "InVolt_T1_T4", _D, "V", "inVoltageT1T4"),
    ObservationDefinition(193, "InVolt_T1_T5", _D, "V", "inVoltageT1T5"),
    ObservationDefinition(194, "InVolt_T2_T3", _D, "V", "inVoltageT2T3"),
    ObservationDefinition(195, "InVolt_T2_T4", _D, "V", "inVoltageT2T4"),
    ObservationDefinition(196, "InVolt_T2_T5", _D, "V", "inVoltageT2T5"),
    ObservationDefinition(197, "InVolt_T3_T4", _D, "V", "inVoltageT3T4"),
    ObservationDefinition(198, "InVolt_T3_T5", _D, "V", "inVoltageT3T5"),
    ObservationDefinition(199, "InVolt_T4_T5", _D, "V", "inVoltageT4T5"),
    ObservationDefinition(202, "OutVoltPin1_2", _D, "V"),
    ObservationDefinition(203, "OutVoltPin1_3", _D, "V"),
    ObservationDefinition(204, "OutVoltPin1_4", _D, "V"),
    ObservationDefinition(205, "OutVoltPin1_5", _D, "V"),
    ObservationDefinition(206, "OutVoltPin2And3", _D, "V"),
    ObservationDefinition(210, "VoltLevel33", _D, "V"),
    ObservationDefinition(211, "VoltLevel5", _D, "V"),
    ObservationDefinition(212, "VoltLevel12", _D, "V"),
    ObservationDefinition(223, "ChargeSessionStart", _J),
    ObservationDefinition(230, "EqAvailableCurrentP1", _D, "A"),
    ObservationDefinition(231, "EqAvailableCurrentP2", _D, "A"),
    ObservationDefinition(232, "EqAvailableCurrentP3", _D, "A"),
    ObservationDefinition(250, "ConnectedToCloud", _BOOL),
    ObservationDefinition(251, "CloudDisconnectReason", _B),
)

ENUM_TEXTS: dict[int, Mapping[Any, str]] = {
    # PhaseMode
    38: {
        0: "Ignore,no phase mode reported",
        1: "Locked to 1-phase",
        2: "Auto phase mode",
        3: "Locked to 3-phase",
    },
    # OfflineChargingMode
    45: {
        0: "Always allow charging if offline",
        1: "Only allow charging if token is whitelisted in the local token cache",
        2: "Never allow charging if offline",
    },
    # LEDMode
    46: {
        0: "Charger is disabled",
        **{mode: "Charger is updating" for mode in range(1, 16)},
        16: "Charger is faulty",
        17: "Charger is faulty",
        18: "Standby Master",
        19: "Standby Secondary",
        20: "Secondary unit searching for master",
        21: "Smart mode (Not charging)",
        22: "Smart mode (Charging)",
        23: "Normal mode (Not charging)",
        24: "Normal mode (Charging)",
        25: "Waiting for authorization",
        26: "Verifying with backend",
        27: "Check configuration (Backplate chip defect)",
        29: "Pairing RFID Keys",
        43: "Self test mode",
        44: "Self test mode",
    },
    # RebootReason
    89: {
        0: "FirewallReset",
        1: "OptionByteLoaderReset",
        2: "PinReset",
        3: "BOR",
        4: "SoftwareReset",
        5: "IndependentWindowWatchdogReset",
        6: "WindowWatchdogReset",
        7: "LowPowerReset",
        12: "Brownout",
        20: "Reboot",
    },
    # ReasonForNoCurrent
    96: {
        0: "Charger Fine - Charger is OK, use main charger status",
        1: "Loadbalancing - Max circuit current too low, adjust power circuit up.",
        2: "Loadbalancing - Max dynamic circuit current too low (Partner Loadbalancing)",
        3: "Loadbalancing - Max dynamic offline fallback circuit current too low",
        4: "Loadbalancing - Circuit fuse too low",
        5: "Loadbalancing - Waiting in queue",
        6: "Loadbalancing - Waiting in fully charged queue (Assumes a connected EV uses delated charging, EV Charging complete",
        7: "Error - illegal grid type (Error - Fault in automatic grid type detection)",
        8: "Error - primary unit has not received current request from secondary unit (car)",
        9: "Error - Master communication lost (Error)",
        10: "Error - No current from equalizer to low",
        11: "Error - No current, phase not connected",
        25: "Error - Current limited by circuit fuse",
        26: "Error - Current limited by circuit max current",
        27: "Error - Current limited by dynamic circuit current",
        28: "Error - Current limited by equalizer",
        29: "Error - Current limited by circuit load balancing",
        50: "Load balancing circuit - Secondary unit not requesting current (No car connected)",
        51: "Load balancing circuit - Max charger current too low",
        52: "Load balancing circuit - Max Dynamic charger current too low",
        53: "Informational - Charger disabled",
        54: "Waiting - Pending scheduled charging",
        55: "Waiting - Pending authorization",
        56: "Error - Charger in error state",
        57: "Error - Erratic EV",
        75: "Cable - Current limited by cable rating",
        76: "Schedule - Current limited by schedule",
        77: "Charger Limit - Current limited by charger max current",
        78: "Charger Limit - Current limited by dynamic charger current",
        79: "Car Limit - Current limited by car not charging",
        80: "??? - Current limited by local adjustment",
        81: "Car Limit - Current limited by car",
        100: "UndefinedError",
    },
    # PilotMode
    100: {
        "A": "Car disconnected",
        "B": "Car connected",
        "C": "Car charging",
        "D": "Car needs ventilation",
        "F": "Fault detected (LED goes Red and charging stops)",
    },
    # ChargerOpMode
    109: {
        0: "Offline - Offline.",
        1: "Disconnected - No car connected.",
        2: "AwaitingStart - Car connected, charger is waiting for EV or load balancing. SuspendedEVSE.",
        3: "Charging - Charging.",
        4: "Completed - Car has paused/stopped charging.",
        5: "Error - Error in charger.",
        6: "ReadyToCharge - Charger is waiting for car to take energy. SuspendedEV.",
        7: "Awaiting Authentication - Charger is waiting for authentication.",
        8: "De-authenticating - Charger is de-authenticating.",
    },
    # OutputPhase
    110: {
        0: "Unassigned",
        10: "1-phase (N+L1)",
        11: "1-phase (L1+L2)",
        12: "1-phase (N+L2)",
        13: "1-phase (L1+L3)",
        14: "1-phase (N+L3)",
        15: "1-phase (L2+L3)",
        20: "2-phases on TN (N+L1, N+L2)",
        21: "2-phases on TN (N+L2, N+L3)",
        22: "2-phases on IT (L1+L2, L2+L3)",
        30: "3-phases (N+L1, N+L2, N+L3)",
    },
}


def _build_indexes() -> tuple[
    dict[int, ObservationDefinition], dict[str, ObservationDefinition]
]:
    by_id: dict[int, ObservationDefinition] = {}
    by_name: dict[str, ObservationDefinition] = {}
    for definition in OBSERVATIONS:
        by_id.setdefault(definition.observation_id, definition)
        keys = [definition.name, definition.name.replace("_", "")]
        if definition.alternate_name:
            keys.append(definition.alternate_name)
        # Earlier table entries win on collisions
        for key in keys:
            by_name.setdefault(key.lower(), definition)
    return by_id, by_name


_BY_ID, _BY_NAME = _build_indexes()


def find_definition(key: Any, mode: str = MODE_ID) -> ObservationDefinition | None:
    """Return the table entry for an observation id or name."""
    if mode == MODE_ID:
        if isinstance(key, bool):
            return None
        try:
            return _BY_ID.get(int(key))
        except (TypeError, ValueError):
            return None
    if mode == MODE_NAME:
        if not isinstance(key, str):
            return None
        return _BY_NAME.get(key.lower())
    raise ValueError(f"Invalid observation match mode: {mode}")


def enum_text(observation_id: int, value: Any) -> str | None:
    """Return the display text for an enumerated value, if one is known."""
    mapping = ENUM_TEXTS.get(observation_id)
    if mapping is None:
        return None
    try:
        return mapping.get(value)
    except TypeError:
        # Unhashable values such as parsed JSON
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _to_int(value: Any) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        _LOGGER.debug("Unable to convert %s to an integer", value)
        return value


def _to_float(value: Any) -> Any:
    try:
        return float(value)
    except (TypeError, ValueError):
        _LOGGER.debug("Unable to convert %s to a float", value)
        return value


def coerce_value(data_type: DataType, value: Any) -> tuple[Any, str | None]:
    """Convert a raw value to the python type of its wire data type.

    Return the converted value and, for JSON values that fail to parse, the
    parser error message. Values of other types are returned unchanged.
    """
    if value is None:
        return None, None
    if data_type is DataType.BOOLEAN:
        return _to_bool(value), None
    if data_type is DataType.DOUBLE:
        return _to_float(value), None
    if data_type is DataType.INTEGER:
        return _to_int(value), None
    if data_type is DataType.JSON and isinstance(value, (str, bytes)):
        try:
            return json.loads(value), None
        except ValueError as err:
            return value, f"JSON parse error: {err}"
    return value, None


def parse_observation(
    data: Mapping[str, Any], mode: str = MODE_ID
) -> ParsedObservation:
    """Decode one raw observation.

    ``data`` carries ``id`` (id mode) or ``dataName`` (name mode), a
    ``value`` and optionally a ``timestamp``. Unknown observations are not
    errors: a positive numeric id is kept as the observation id and type,
    unit and text are left empty.
    """
    raw_id = data.get("id")
    data_name = data.get("dataName")
    key = raw_id if mode == MODE_ID else data_name
    definition = find_definition(key, mode)

    value = data.get("value")
    timestamp = data.get("timestamp") or datetime.datetime.now(
        datetime.timezone.utc
    ).isoformat()

    if definition is None:
        observation_id = None
        if isinstance(raw_id, int) and not isinstance(raw_id, bool) and raw_id > 0:
            observation_id = raw_id
        _LOGGER.debug("Unknown observation %s", key)
        return ParsedObservation(
            id=raw_id,
            observation_id=observation_id,
            name=data_name or f"unknown_{raw_id}",
            data_type=None,
            value=value,
            value_text=None,
            unit=None,
            timestamp=timestamp,
            charger_id=data.get("mid"),
        )

    value, parse_error = coerce_value(definition.data_type, value)
    return ParsedObservation(
        id=raw_id,
        observation_id=definition.observation_id,
        name=definition.name,
        data_type=definition.data_type,
        value=value,
        value_text=enum_text(definition.observation_id, value),
        unit=definition.unit,
        timestamp=timestamp,
        parse_error=parse_error,
        charger_id=data.get("mid"),
    )


def _timestamp(observation: ParsedObservation) -> datetime.datetime | None:
    try:
        stamp = datetime.datetime.fromisoformat(
            str(observation.timestamp).replace("Z", "+00:00")
        )
    except ValueError:
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=datetime.timezone.utc)
    return stamp


def observation_charger_id(observation: ParsedObservation) -> str:
    """Return the charger an observation belongs to.

    Stream events carry the charger in ``mid``. Otherwise the charger id is
    the prefix of observation ids shaped like ``EH123456_1_<time>_<type>``.
    """
    if observation.charger_id:
        return str(observation.charger_id)
    if observation.id is None:
        return "unknown"
    return str(observation.id).split("_", maxsplit=1)[0] or "unknown"


def parse_observations(
    observations: Any, mode: str = MODE_ID
) -> dict[str, list[ParsedObservation]]:
    """Decode raw observations and group them by charger id."""
    grouped: dict[str, list[ParsedObservation]] = {}
    if not isinstance(observations, (list, tuple)):
        return grouped
    for data in observations:
        if not isinstance(data, Mapping):
            _LOGGER.debug("Skipping malformed observation: %s", data)
            continue
        observation = parse_observation(data, mode)
        grouped.setdefault(observation_charger_id(observation), []).append(
            observation
        )
    return grouped


def parse_charger_config(data: Any) -> dict[str, Any] | None:
    """Return a normalized summary of a charger from the REST API."""
    if not isinstance(data, Mapping):
        return None
    return {
        "id": data.get("id"),
        "name": data.get("name") or data.get("id"),
        "site_id": data.get("siteId"),
        "site_name": data.get("siteName"),
        "circuit_id": data.get("circuitId"),
        "product_code": data.get("productCode"),
        "back_plate": data.get("backPlate"),
        "level_of_access": data.get("levelOfAccess"),
        "location": data.get("location"),
        "address": data.get("address"),
        "created_on": data.get("createdOn"),
        "updated_on": data.get("updatedOn"),
    }


def extract_charger_status(
    observations: Iterable[ParsedObservation], charger_id: str
) -> dict[str, Any]:
    """Summarize parsed observations into a charger status dict."""
    status: dict[str, Any] = {
        "id": charger_id,
        "name": charger_id,
        "online": False,
        "state": "unknown",
    }
    voltages = {"InVolt_T1_T2": "l1", "InVolt_T1_T3": "l2", "InVolt_T1_T4": "l3"}
    latest: datetime.datetime | None = None

    for observation in observations:
        stamp = _timestamp(observation)
        if stamp is not None and (latest is None or stamp > latest):
            latest = stamp

        if observation.name == "ChargerOpMode":
            status["state"] = observation.value_text or observation.value
        elif observation.name == "TotalPower":
            status["power"] = observation.value
        elif observation.name == "OutputCurrent":
            status["current"] = observation.value
        elif observation.name in voltages:
            status.setdefault("voltage", {})[voltages[observation.name]] = (
                observation.value
            )

    if latest is not None:
        now = datetime.datetime.now(datetime.timezone.utc)
        status["online"] = now - latest < ONLINE_WINDOW
        status["last_seen"] = latest.isoformat()
    return status


def format_observation(
    observation: ParsedObservation, charger_id: str | None = None
) -> dict[str, Any]:
    """Flatten a parsed observation into a flow message."""
    if charger_id is None:
        charger_id = observation_charger_id(observation)
    return {
        "charger_id": charger_id,
        "observation_id": observation.observation_id,
        "data_name": observation.name,
        "data_type": observation.data_type_name,
        "value": observation.value,
        "value_text": observation.value_text,
        "unit": observation.unit,
        "timestamp": observation.timestamp,
        "payload": observation.value,
        "topic": f"easee/{charger_id}/{observation.name}",
    }
