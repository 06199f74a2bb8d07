"""CLI tool running an attendance station against a live camera."""
import argparse
import asyncio
import sys
from typing import Optional

from attendance_station.core.container import container
from attendance_station.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def run_session(
    class_id: str,
    session_id: str,
    camera: Optional[str] = None,
    landmarks: bool = True,
    auto: bool = True,
    complete_on_exit: bool = False,
    status_interval: float = 5.0,
) -> int:
    """
    Open a station, take attendance until interrupted, then tear it down.

    Notices are logged as they are published; a status line is logged every
    ``status_interval`` seconds.

    Args:
        class_id: Teaching class identifier
        session_id: Attendance session identifier
        camera: Device index or stream URL, defaults to settings
        landmarks: Run the landmark overlay while auto mode is off
        auto: Start auto attendance right away
        complete_on_exit: End the session when the run stops
        status_interval: Seconds between status lines

    Returns:
        Process exit code
    """
    await container.initialize()
    try:
        station = await container.open_station(class_id, session_id, camera_source=camera)
        if station.fatal_error:
            logger.error("Attendance station could not start", error=station.fatal_error)
            return 1
        if station.is_completed:
            logger.info("Session is already completed, nothing to do", session_id=session_id)
            return 0

        station.set_show_landmarks(landmarks)
        if auto and not station.start_auto().success:
            return 1

        try:
            while not station.is_completed:
                await asyncio.sleep(status_interval)
                station.notices.drain()
                state = station.state()
                logger.info(
                    "Attendance status",
                    present=state.attending_count,
                    total=state.total_students,
                    faces=state.detected_faces,
                    auto=state.auto_mode
                )
        finally:
            if complete_on_exit and station.is_open and not station.is_completed:
                await station.complete_session()
        return 0
    finally:
        await container.cleanup()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Take attendance for a session from a live camera")
    parser.add_argument("class_id", help="Teaching class identifier")
    parser.add_argument("session_id", help="Attendance session identifier")
    parser.add_argument("--camera", default=None, help="Device index or stream URL")
    parser.add_argument(
        "--no-landmarks",
        action="store_true",
        help="Don't run the landmark overlay"
    )
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Don't start auto attendance"
    )
    parser.add_argument(
        "--complete-on-exit",
        action="store_true",
        help="End the session when interrupted"
    )
    args = parser.parse_args()

    setup_logging()
    try:
        code = asyncio.run(
            run_session(
                args.class_id,
                args.session_id,
                camera=args.camera,
                landmarks=not args.no_landmarks,
                auto=not args.manual,
                complete_on_exit=args.complete_on_exit,
            )
        )
    except KeyboardInterrupt:
        logger.info("Attendance run interrupted")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
