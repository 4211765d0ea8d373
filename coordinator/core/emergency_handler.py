"""Emergency alerts: forced task pauses and device quarantine, and their reversal"""
import logging
from datetime import datetime
from typing import Callable, Optional

from coordinator.core.event_sink import (EventSink, GLOBAL_ROOM,
                                         publish_project_updated,
                                         publish_safely, publish_task_status)
from coordinator.core.production_aggregator import ProductionAggregator
from coordinator.core.state_manager import StateManager
from coordinator.core.task_state_machine import SYSTEM_ACTOR, TaskStateMachine
from shared.enums import (AlertStatus, AlertType, DeviceStatus, EventTopic,
                          TaskStatus)
from shared.errors import InvalidAlertOperation
from shared.models import (Alert, Device, DeviceStatusEntry, EmergencyActions,
                           Task, utc_now)

logger = logging.getLogger(__name__)


class EmergencyInterruptHandler:
    """Applies and reverses the side effects of EMERGENCY alerts.

    Raising pauses the referenced task if it is ONGOING and quarantines the
    referenced device unless it is already in MAINTENANCE. What was changed
    is recorded on the alert so resolution undoes exactly that.
    """

    def __init__(self,
                 state: StateManager,
                 state_machine: TaskStateMachine,
                 aggregator: ProductionAggregator,
                 events: EventSink,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.state_machine = state_machine
        self.aggregator = aggregator
        self.events = events
        self.clock = clock

    # ========================================================================
    # Raise
    # ========================================================================

    async def raise_alert(self, alert: Alert) -> Alert:
        """Persist an alert and, for emergencies, interrupt task and device.

        The alert is stored before any side effect, and each side effect is
        stored together with the alert recording it, so whatever was changed
        can always be undone by resolving the alert.
        """
        emergency = alert.type == AlertType.EMERGENCY
        if emergency:
            alert.emergency_actions = EmergencyActions()

        await self.state.save(alert)
        logger.info(f"Alert {alert.id} raised: {alert.type.value} {alert.title}")

        if emergency:
            alert = await self._interrupt(alert)
            await self.state.increment_metric("emergencies_raised")

        await publish_safely(self.events, EventTopic.ALERT_RAISED,
                             alert.model_dump(mode="json"), [GLOBAL_ROOM])
        return alert

    async def _interrupt(self, alert: Alert) -> Alert:
        """Apply emergency side effects, returning the stored alert"""
        task = await self.state.get(Task, alert.task_id)
        if task is not None and task.status == TaskStatus.ONGOING:
            paused = task.model_copy(deep=True)
            paused_by = task.worker_id or alert.reported_by or SYSTEM_ACTOR
            previous = await self.state_machine.transition(
                paused,
                TaskStatus.PAUSED_EMERGENCY,
                actor=paused_by,
                reason=f"Emergency: {alert.title}",
                emergency=True)
            alert = alert.model_copy(deep=True)
            alert.emergency_actions.task_paused = paused.id
            await self.state.save_many([paused, alert])
            logger.warning(f"Task {paused.id} paused by emergency {alert.id}")
            await publish_task_status(self.events, paused, previous)
            await self._recalculate(paused.project_id)

        device = await self.state.get(Device, alert.device_id)
        if device is not None and device.status != DeviceStatus.MAINTENANCE:
            quarantined = device.model_copy(deep=True)
            self._set_device_status(quarantined, DeviceStatus.MAINTENANCE,
                                    f"Emergency: {alert.title}",
                                    alert.reported_by or SYSTEM_ACTOR)
            quarantined.error_reason = alert.title
            alert = alert.model_copy(deep=True)
            alert.emergency_actions.previous_device_status = device.status
            alert.emergency_actions.device_quarantined = device.id
            await self.state.save_many([quarantined, alert])
            logger.warning(
                f"Device {device.id} quarantined by emergency {alert.id}")
            await self._publish_device(quarantined)

        return alert

    # ========================================================================
    # Acknowledge / resolve
    # ========================================================================

    async def acknowledge(self, alert_id: str, user: str) -> Alert:
        alert = await self.state.require(Alert, alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise InvalidAlertOperation(
                f"Alert {alert_id} is already resolved")

        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_by = user
        alert.acknowledged_at = self.clock()
        await self.state.save(alert)
        await publish_safely(self.events, EventTopic.ALERT_ACKNOWLEDGED,
                             alert.model_dump(mode="json"), [GLOBAL_ROOM])
        return alert

    async def resolve(self,
                      alert_id: str,
                      resolved_by: str,
                      notes: Optional[str] = None) -> Alert:
        """Resolve an emergency and reverse its side effects.

        Re-resolving an already resolved alert returns it unchanged.

        Raises:
            EntityNotFound: If the alert does not exist
            InvalidAlertOperation: If the alert is not an EMERGENCY
        """
        alert = await self.state.require(Alert, alert_id)
        if alert.type != AlertType.EMERGENCY:
            raise InvalidAlertOperation(
                f"Alert {alert_id} is {alert.type.value}, not an emergency")
        if alert.status == AlertStatus.RESOLVED:
            logger.info(f"Emergency {alert_id} already resolved")
            return alert

        actions = alert.emergency_actions or EmergencyActions()
        alert.status = AlertStatus.RESOLVED
        alert.resolved_by = resolved_by
        alert.resolved_at = self.clock()
        alert.resolution_notes = notes

        # Device first, the task resumes on it
        if actions.device_quarantined:
            await self._restore_device(actions, resolved_by)
        if actions.task_paused:
            await self._resume_task(actions.task_paused, resolved_by)

        await self.state.save(alert)
        logger.info(f"Emergency {alert_id} resolved by {resolved_by}")
        await publish_safely(self.events, EventTopic.ALERT_RESOLVED,
                             alert.model_dump(mode="json"), [GLOBAL_ROOM])
        return alert

    async def _restore_device(self, actions: EmergencyActions,
                              resolved_by: str) -> None:
        device = await self.state.get(Device, actions.device_quarantined)
        if device is None or device.status != DeviceStatus.MAINTENANCE:
            return
        restored = actions.previous_device_status or DeviceStatus.ONLINE
        self._set_device_status(device, restored, "Emergency resolved",
                                resolved_by)
        device.error_reason = None
        await self.state.save(device)
        await self._publish_device(device)

    async def _resume_task(self, task_id: str, resolved_by: str) -> None:
        task = await self.state.get(Task, task_id)
        if task is None or task.status != TaskStatus.PAUSED_EMERGENCY:
            return
        previous = await self.state_machine.transition(task,
                                                       TaskStatus.ONGOING,
                                                       actor=resolved_by,
                                                       emergency=True)
        await self.state.save(task)
        await publish_task_status(self.events, task, previous)
        await self._recalculate(task.project_id)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _set_device_status(self, device: Device, status: DeviceStatus,
                           reason: str, changed_by: str) -> None:
        now = self.clock()
        device.status = status
        device.status_history.append(
            DeviceStatusEntry(status=status,
                              changed_at=now,
                              reason=reason,
                              changed_by=changed_by))
        device.updated_at = now

    async def _publish_device(self, device: Device) -> None:
        await publish_safely(self.events, EventTopic.DEVICE_UPDATED,
                             device.model_dump(mode="json"), [GLOBAL_ROOM])

    async def _recalculate(self, project_id: str) -> None:
        project = await self.aggregator.recalculate_by_id(project_id)
        if project is not None:
            await publish_project_updated(self.events, project)
