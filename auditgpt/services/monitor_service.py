# auditgpt/services/monitor_service.py
"""
Local simulator behind the "live monitoring" screen.

Nothing here talks to a chain: events, gas readings and hashes are random
numbers shaped like blockchain activity.
"""
import threading
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Dict, List, Optional

import numpy as np
from web3 import Web3

from auditgpt.errors import ValidationError
from auditgpt.models.report import Severity
from auditgpt.services.source_provider import is_valid_address

MAX_EVENTS_PER_CONTRACT = 50
MAX_CHART_POINTS = 20
EVENT_PROBABILITY = 0.3

# transactions are three times as likely as gas spikes or alerts
EVENT_TYPES = ("TRANSACTION", "TRANSACTION", "TRANSACTION", "GAS_SPIKE", "ALERT")
ALERT_MESSAGES = (
    "Suspicious reentrancy pattern detected",
    "Large withdrawal exceeding threshold",
    "Privileged role calling sensitive function",
    "Flash loan interaction detected",
)


class AlreadyMonitoredError(ValidationError):
    pass


@dataclass(frozen=True)
class MonitoringEvent:
    id: str
    timestamp: datetime
    type: str
    severity: Severity
    message: str
    hash: str
    value: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "hash": self.hash,
            "value": self.value,
        }


@dataclass
class ContractStats:
    tx_count: int = 0
    volume: float = 0.0
    last_gas: int = 0


@dataclass
class MonitoredContract:
    address: str
    name: str
    status: str = "active"
    events: List[MonitoringEvent] = field(default_factory=list)
    stats: ContractStats = field(default_factory=ContractStats)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "name": self.name,
            "status": self.status,
            "events": [e.to_dict() for e in self.events],
            "stats": {
                "txCount": self.stats.tx_count,
                "volume": round(self.stats.volume, 2),
                "lastGas": self.stats.last_gas,
            },
        }


@dataclass
class AlertConfig:
    email: str = ""
    slack_webhook: str = ""
    discord_webhook: str = ""
    min_eth_transfer: float = 10.0
    gas_threshold: int = 300
    detect_flash_loans: bool = True


class MonitorSimulator:
    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self._contracts: Dict[str, MonitoredContract] = {}
        self._chart: List[dict] = []
        self.alert_config = AlertConfig()

    @staticmethod
    def _key(address: str) -> str:
        return (address or "").strip().lower()

    # --- contracts ---

    def list_contracts(self) -> List[MonitoredContract]:
        with self._lock:
            return list(self._contracts.values())

    def add_contract(self, address: str, name: str) -> MonitoredContract:
        address, name = (address or "").strip(), (name or "").strip()
        if not address or not name:
            raise ValidationError("Both 'address' and 'name' are required")
        if not is_valid_address(address):
            raise ValidationError("Invalid Polygon Address Format")

        with self._lock:
            if self._key(address) in self._contracts:
                raise AlreadyMonitoredError(f"Contract {address} is already monitored")
            contract = MonitoredContract(address=address, name=name)
            self._contracts[self._key(address)] = contract
            return contract

    def remove_contract(self, address: str) -> MonitoredContract:
        with self._lock:
            return self._contracts.pop(self._key(address))

    def toggle_contract(self, address: str) -> MonitoredContract:
        with self._lock:
            contract = self._contracts[self._key(address)]
            contract.status = "paused" if contract.status == "active" else "active"
            return contract

    # --- simulation ---

    def _random_event(self, now: datetime) -> MonitoringEvent:
        rng = self._rng
        event_type = EVENT_TYPES[rng.integers(len(EVENT_TYPES))]

        if event_type == "GAS_SPIKE":
            severity = Severity.MEDIUM
            message = f"Gas Usage Spike: {rng.uniform(100, 600):.0f} Gwei detected"
        elif event_type == "ALERT":
            severity = Severity.HIGH
            message = ALERT_MESSAGES[rng.integers(len(ALERT_MESSAGES))]
        else:
            severity = Severity.INFO
            message = f"Transfer of {rng.uniform(0, 5):.2f} MATIC"

        return MonitoringEvent(
            id=rng.bytes(4).hex(),
            timestamp=now,
            type=event_type,
            severity=severity,
            message=message,
            hash=Web3.to_hex(rng.bytes(32)),
            value=round(float(rng.uniform(0, 100)), 2),
        )

    def tick(self, now: Optional[datetime] = None) -> List[MonitoringEvent]:
        """Advance the simulation one step; returns the events generated."""
        now = now or datetime.now(timezone.utc)
        generated = []
        with self._lock:
            self._chart.append({
                "time": now.isoformat(),
                "gas": int(self._rng.integers(50, 250)),
                "txs": int(self._rng.integers(0, 20)),
            })
            del self._chart[:-MAX_CHART_POINTS]

            for contract in self._contracts.values():
                if contract.status == "paused":
                    continue
                if self._rng.random() >= EVENT_PROBABILITY:
                    continue
                event = self._random_event(now)
                contract.events.insert(0, event)
                del contract.events[MAX_EVENTS_PER_CONTRACT:]
                contract.stats.tx_count += 1
                contract.stats.volume += event.value
                contract.stats.last_gas = int(self._rng.integers(0, 100))
                generated.append(event)
        return generated

    def chart(self) -> List[dict]:
        with self._lock:
            return list(self._chart)

    def feed(self) -> List[dict]:
        with self._lock:
            items = [
                {**event.to_dict(), "contractName": contract.name}
                for contract in self._contracts.values()
                for event in contract.events
            ]
        return sorted(items, key=lambda item: item["timestamp"], reverse=True)

    # --- alerts ---

    def update_alert_config(self, **changes) -> AlertConfig:
        known = {f.name for f in fields(AlertConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown alert settings: {', '.join(sorted(unknown))}")

        current = asdict(self.alert_config)
        for key, value in changes.items():
            default = current[key]
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ValidationError(f"'{key}' must be a boolean")
            elif isinstance(default, (int, float)):
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    raise ValidationError(f"'{key}' must be a non-negative number")
                value = type(default)(value)
            elif not isinstance(value, str):
                raise ValidationError(f"'{key}' must be a string")
            current[key] = value

        with self._lock:
            self.alert_config = AlertConfig(**current)
            return self.alert_config
