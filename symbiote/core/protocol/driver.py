import logging
from typing import Callable

from symbiote.core.models.config import SessionConfig
from symbiote.core.models.report import AbortReason, Role, SessionReport
from symbiote.core.ports.channel import Channel
from symbiote.core.protocol.session import FirstSession, SecondSession, Session
from symbiote.core.registry import CodecRegistry
from symbiote.core.wire.messages import MessageCodec

ReportHandler = Callable[[SessionReport], None]


class Driver:
    """
    Runs one complete session for a given role and produces its report.

    The driver never stops on a failed trial: it only finalizes the report
    when the session completes or aborts. The channel is always closed
    afterwards, so the peer observes the end of the session even when this
    side aborted. Turning a failing report into an exit status is left to
    the caller.
    """

    def __init__(
        self,
        role: Role,
        registry: CodecRegistry,
        codec: MessageCodec,
        config: SessionConfig,
    ) -> None:
        self._role = role
        self._registry = registry
        self._codec = codec
        self._config = config
        self._logger = logging.getLogger("core.protocol.driver")

    def create_session(self, channel: Channel) -> Session:
        session_cls = FirstSession if self._role is Role.first else SecondSession
        return session_cls(
            channel=channel,
            registry=self._registry,
            codec=self._codec,
            config=self._config,
        )

    async def run(self, channel: Channel) -> SessionReport:
        session = self.create_session(channel)
        try:
            report = await session.run()
        except Exception as ex:
            self._logger.error(f"Unhandled error in {self._role} session", exc_info=ex)
            session.report.abort(AbortReason.internal_error, str(ex))
            report = session.report
        finally:
            await channel.close()

        self.log_summary(report)
        return report

    def log_summary(self, report: SessionReport) -> None:
        summary = (
            f"[{report.role}] Session {report.outcome}: "
            f"{report.passed} passed, {report.failed} failed, "
            f"{report.aborted} aborted across {len(report.topics)} topic(s)"
        )
        if report.reason is not None:
            summary += f" (reason: {report.reason}"
            summary += f", {report.detail})" if report.detail else ")"

        if report.ok:
            self._logger.info(summary)
        else:
            self._logger.warning(summary)


class SecondApplication:
    """
    Application run by the MessageServer for every accepted connection:
    one second-party session per connection, reported through `on_report`.
    """

    def __init__(self, driver: Driver, on_report: ReportHandler | None = None) -> None:
        self._driver = driver
        self._on_report = on_report
        self.reports: list[SessionReport] = []

    async def __call__(self, channel: Channel) -> None:
        report = await self._driver.run(channel)
        self.reports.append(report)
        if self._on_report is not None:
            self._on_report(report)
