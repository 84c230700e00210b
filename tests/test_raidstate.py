"""Tests for the raid session state machine."""

from tarkovmonitor.events import (
    ExceptionOccurred,
    FleaOfferExpired,
    FleaSold,
    GroupDisbanded,
    GroupMatchInvite,
    GroupReady,
    GroupUserLeave,
    MatchFound,
    MatchingAborted,
    MatchingStarted,
    RaidExited,
    RaidLoaded,
    RaidType,
    TaskFailed,
    TaskFinished,
    TaskModified,
    TaskStarted,
    TaskStatus,
)
from tarkovmonitor.parser import LogParser, LogRecord
from tarkovmonitor.patterns import LogFieldError
from tarkovmonitor.raidstate import RaidInfo, RaidStateMachine


APP = "2024-05-05 20:14:11.104|0.14.6.0.29862|Info|application|"
NOTIFY = "2024-05-05 20:15:02.511|0.14.6.0.29862|Info|push-notifications|"

LOCATION_LOADED = LogRecord(f"{APP}LocationLoaded:1 real:5.25")
MATCHING_COMPLETED = LogRecord(f"{APP}MatchingCompleted:1 real:12.0")
PROFILE_STATUS = LogRecord(
    f"{APP}TRACE-NetworkGameCreate profileStatus: 'Profileid: 5f0e, Status: Busy, "
    "RaidMode: Online, Ip: 1.2.3.4, Port: 17000, Location: Woods, Sid: X, "
    "GameMode: deathmatch, shortId: AB12CD'"
)
PROFILE_STATUS_OFFLINE = LogRecord(
    f"{APP}TRACE-NetworkGameCreate profileStatus: 'RaidMode: Local, Location: Woods, Sid: X'"
)
GAME_STARTING = LogRecord(f"{APP}GameStarting")
GAME_STARTED = LogRecord(f"{APP}GameStarted")
MATCHING_ABORTED = LogRecord(f"{APP}Network game matching aborted")
MATCHING_CANCELLED = LogRecord(f"{APP}Network game matching cancelled")


def chat(message: dict) -> LogRecord:
    return LogRecord(f"{NOTIFY}Got notification | ChatMessageReceived", {"type": "new_message", "message": message})


def run(machine: RaidStateMachine, *records: LogRecord) -> list:
    events = []
    for record in records:
        events.extend(machine.process_record(record))
    return events


class TestMatchmaking:
    """Queue, match and abort flow."""

    def test_scenario_location_to_match_found(self):
        """LocationLoaded -> MatchingCompleted -> profileStatus raises MatchFound."""
        machine = RaidStateMachine()

        assert run(machine, LOCATION_LOADED) == [MatchingStarted(map_load_time=5.25)]
        assert run(machine, MATCHING_COMPLETED) == []
        assert machine.raid_info.queue_time == 12.0

        assert run(machine, PROFILE_STATUS) == [
            MatchFound(map="Woods", raid_id="AB12CD", queue_time=12.0, map_load_time=5.25)
        ]

    def test_no_match_found_on_reconnect(self):
        """Without a queue time (reconnect) MatchFound is not raised."""
        machine = RaidStateMachine()

        events = run(machine, LOCATION_LOADED, PROFILE_STATUS)

        assert [type(e) for e in events] == [MatchingStarted]
        assert machine.raid_info.online
        assert machine.raid_info.map == "Woods"

    def test_no_match_found_offline(self):
        machine = RaidStateMachine()
        events = run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS_OFFLINE)
        assert [type(e) for e in events] == [MatchingStarted]

    def test_location_loaded_resets_state(self):
        """A new LocationLoaded starts from a fresh RaidInfo."""
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS)

        run(machine, LogRecord(f"{APP}LocationLoaded:2 real:7.5"))

        assert machine.raid_info == RaidInfo(map_load_time=7.5)

    def test_matching_aborted_emits_then_resets(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED)

        events = run(machine, MATCHING_ABORTED)

        assert events == [MatchingAborted(map_load_time=5.25, queue_time=12.0)]
        assert machine.raid_info == RaidInfo()

    def test_matching_cancelled_is_abort(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED)
        assert run(machine, MATCHING_CANCELLED) == [MatchingAborted(map_load_time=5.25, queue_time=0.0)]

    def test_abort_without_context(self):
        """Abort with no prior matching reports zeros instead of failing."""
        assert run(RaidStateMachine(), MATCHING_ABORTED) == [MatchingAborted(map_load_time=0.0, queue_time=0.0)]


class TestRaidLoaded:
    """PMC / Scav / offline raid detection."""

    def test_pmc_raid_loaded_once(self):
        """GameStarting raises RaidLoaded(PMC); GameStarted adds nothing."""
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS)

        starting = run(machine, GAME_STARTING)
        started = run(machine, GAME_STARTED)

        assert starting == [RaidLoaded(
            map="Woods", raid_id="AB12CD", queue_time=12.0, map_load_time=5.25, raid_type=RaidType.PMC
        )]
        assert started == []

    def test_scav_inferred_from_queue_time(self):
        """No countdown but time spent queueing means a Scav raid."""
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS)

        events = run(machine, GAME_STARTED)

        assert events == [RaidLoaded(
            map="Woods", raid_id="AB12CD", queue_time=12.0, map_load_time=5.25, raid_type=RaidType.SCAV
        )]

    def test_rejoined_raid_loaded_with_unknown_type(self):
        """Online raid with no queue time and no countdown keeps the type Unknown."""
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, PROFILE_STATUS)

        assert run(machine, GAME_STARTED) == [RaidLoaded(
            map="Woods", raid_id="AB12CD", queue_time=0.0, map_load_time=5.25, raid_type=RaidType.UNKNOWN
        )]
        assert machine.raid_info == RaidInfo()

    def test_offline_without_queue_raises_nothing(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, PROFILE_STATUS_OFFLINE)

        assert run(machine, GAME_STARTED) == []

    def test_offline_pmc_raises_nothing(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS_OFFLINE)

        assert run(machine, GAME_STARTING, GAME_STARTED) == []

    def test_game_started_resets_state(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED, PROFILE_STATUS, GAME_STARTING, GAME_STARTED)

        assert machine.raid_info == RaidInfo()

    def test_game_started_without_context(self):
        """GameStarted with no raid context is tolerated."""
        machine = RaidStateMachine()
        assert run(machine, GAME_STARTED) == []
        assert machine.raid_info == RaidInfo()

    def test_raid_info_versions_are_not_mutated(self):
        """Holding a RaidInfo reference is safe across updates."""
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED)
        before = machine.raid_info

        run(machine, MATCHING_COMPLETED)

        assert before.queue_time == 0.0
        assert machine.raid_info.queue_time == 12.0

    def test_reset(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED)
        machine.reset()
        assert machine.raid_info == RaidInfo()


class TestNotifications:
    """Group, raid exit, flea and task notifications."""

    def test_raid_exited_does_not_reset(self):
        machine = RaidStateMachine()
        run(machine, LOCATION_LOADED, MATCHING_COMPLETED)

        events = run(machine, LogRecord(
            f"{NOTIFY}Got notification | UserMatchOver", {"location": "Woods", "shortId": "AB12CD"}
        ))

        assert events == [RaidExited(map="Woods", raid_id="AB12CD")]
        assert machine.raid_info.queue_time == 12.0

    def test_group_events(self):
        machine = RaidStateMachine()
        events = run(
            machine,
            LogRecord(f"{NOTIFY}Got notification | GroupMatchInviteAccept",
                      {"type": "groupMatchInviteAccept", "Info": {"Nickname": "Bob"}}),
            LogRecord(f"{NOTIFY}Got notification | GroupMatchUserLeave", {"Nickname": "Bob"}),
            LogRecord(f"{NOTIFY}Got notification | GroupMatchWasRemoved"),
        )

        assert [type(e) for e in events] == [GroupMatchInvite, GroupUserLeave, GroupDisbanded]
        assert events[0].player.nickname == "Bob"
        assert events[1] == GroupUserLeave(nickname="Bob")

    def test_group_ready(self):
        payload = {"extendedProfile": {
            "Info": {"Nickname": "Bob", "Side": "Usec", "Level": 20},
            "PlayerVisualRepresentation": {"Info": {"Nickname": "Bob", "Side": "Usec", "Level": 20}},
        }}
        [event] = run(RaidStateMachine(), LogRecord(f"{NOTIFY}Got notification | GroupMatchRaidReady", payload))

        assert isinstance(event, GroupReady)
        assert str(event) == "Bob (Usec, 20)"

    def test_flea_sold_scenario(self):
        """System reward with the sold template raises FleaSold."""
        message = {
            "type": 4,
            "templateId": "5bdabfb886f7743e152e867e 0",
            "hasRewards": True,
            "systemData": {"buyerNickname": "Buyer", "soldItem": "S", "itemCount": 1},
            "items": {"data": [{"_tpl": "X", "upd": {"StackObjectsCount": 3}}]},
        }
        [event] = run(RaidStateMachine(), chat(message))

        assert isinstance(event, FleaSold)
        assert event.sold_item_id == "S"
        assert event.buyer == "Buyer"
        assert event.received_items == {"X": 3}

    def test_flea_offer_expired(self):
        message = {
            "type": 4,
            "templateId": "5bdabfe486f7743e1665df6e 0",
            "items": {"data": [{"_tpl": "X", "upd": {"StackObjectsCount": 2}}]},
        }
        assert run(RaidStateMachine(), chat(message)) == [FleaOfferExpired(item_id="X", item_count=2)]

    def test_other_system_reward_ignored(self):
        message = {"type": 4, "templateId": "something else 0"}
        assert run(RaidStateMachine(), chat(message)) == []

    def test_task_started(self):
        message = {"type": 10, "templateId": "5936d90786f7742b1420ba5b 0"}
        assert run(RaidStateMachine(), chat(message)) == [
            TaskModified(task_id="5936d90786f7742b1420ba5b", status=TaskStatus.STARTED),
            TaskStarted(task_id="5936d90786f7742b1420ba5b"),
        ]

    def test_task_failed_and_finished(self):
        machine = RaidStateMachine()
        events = run(
            machine,
            chat({"type": 11, "templateId": "a 0"}),
            chat({"type": 12, "templateId": "b 0"}),
        )
        assert events == [
            TaskModified(task_id="a", status=TaskStatus.FAILED),
            TaskFailed(task_id="a"),
            TaskModified(task_id="b", status=TaskStatus.FINISHED),
            TaskFinished(task_id="b"),
        ]

    def test_task_without_template_ignored(self):
        assert run(RaidStateMachine(), chat({"type": 10})) == []

    def test_player_message_ignored(self):
        assert run(RaidStateMachine(), chat({"type": 1, "text": "hi"})) == []


class TestErrorIsolation:
    """A bad record is reported and never stops the stream."""

    def test_missing_required_field_reported(self):
        machine = RaidStateMachine()
        events = run(machine, LogRecord(f"{NOTIFY}Got notification | UserMatchOver"))

        assert len(events) == 1
        assert isinstance(events[0], ExceptionOccurred)
        assert isinstance(events[0].error, LogFieldError)

    def test_processing_continues_after_error(self):
        machine = RaidStateMachine()
        events = run(
            machine,
            LogRecord(f"{APP}LocationLoaded without time"),
            LOCATION_LOADED,
        )

        assert isinstance(events[0], ExceptionOccurred)
        assert events[1] == MatchingStarted(map_load_time=5.25)

    def test_malformed_payload_keeps_message_fields(self):
        """A broken payload still lets message-derived fields through."""
        parser = LogParser()
        text = (
            f"{APP}LocationLoaded:1 real:5.25\n"
            "{\n"
            "  not json\n"
            "}\n"
        )
        records = list(parser.feed(text))

        assert records[0].payload == {}
        assert run(RaidStateMachine(), *records) == [MatchingStarted(map_load_time=5.25)]

    def test_flea_sold_without_sold_item_reported(self):
        message = {"type": 4, "templateId": "5bdabfb886f7743e152e867e 0", "systemData": {}}
        [event] = run(RaidStateMachine(), chat(message))
        assert isinstance(event, ExceptionOccurred)
