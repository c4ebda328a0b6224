import threading

from call_relay import handlers
from call_relay.handlers import dispatch
from call_relay.session import CallStatus


def pairs(outbound):
    return [(o.target, o.event) for o in outbound]


def create(table, endpoint_id="X"):
    out = dispatch("create-call", endpoint_id, {}, table)
    assert pairs(out) == [(endpoint_id, "call-created")]
    return out[0].data["callCode"]


def join_open(table, code, joiner="Y"):
    return dispatch("join-call", joiner, {"callCode": code}, table)


def join_gated(table, code, creator="X", joiner="Y"):
    dispatch("join-call", joiner, {"callCode": code}, table)
    return dispatch("accept-participant", creator, {"callCode": code, "participantId": joiner}, table)


def test_create_reply_carries_code_and_session_key(gated):
    out = dispatch("create-call", "X", {}, gated)
    data = out[0].data
    assert len(data["callCode"]) == 6
    assert data["sessionId"] == gated.get(data["callCode"]).session_id
    assert data["participantCount"] == 1


def test_scenario_a_open_join(open_table):
    code = create(open_table)
    out = join_open(open_table, code)
    assert pairs(out) == [("Y", "call-joined"), ("X", "participant-joined")]
    assert all(o.data["participantCount"] == 2 for o in out)
    assert open_table.get(code).status == CallStatus.ACTIVE


def test_scenario_b_gated_reject(gated):
    code = create(gated)
    out = dispatch("join-call", "Y", {"callCode": code}, gated)
    assert pairs(out) == [("Y", "call-waiting-for-approval"), ("X", "participant-waiting")]
    assert out[1].data["participantId"] == "Y"

    out = dispatch("reject-participant", "X", {"callCode": code, "participantId": "Y"}, gated)
    assert pairs(out) == [("Y", "call-rejected"), ("X", "participant-rejected")]

    call = gated.get(code)
    assert call.members == ["X"]
    assert call.pending_joiner is None
    assert call.status == CallStatus.WAITING
    assert gated.call_of("Y") is None


def test_gated_accept_notifies_both(gated):
    code = create(gated)
    out = join_gated(gated, code)
    assert sorted(pairs(out)) == [("X", "participant-accepted"), ("Y", "participant-accepted")]
    assert out[0].data["participantCount"] == 2
    assert out[0].data["sessionId"] == gated.get(code).session_id


def test_scenario_c_disconnect_frees_slot(open_table):
    code = create(open_table)
    join_open(open_table, code)

    out = handlers.disconnect("Y", open_table)
    assert pairs(out) == [("X", "participant-left")]
    assert out[0].data["participantId"] == "Y"
    assert out[0].data["participantCount"] == 1

    call = open_table.get(code)
    assert call.members == ["X"]
    assert call.status == CallStatus.WAITING

    out = join_open(open_table, code, joiner="Z")
    assert pairs(out)[0] == ("Z", "call-joined")


def test_leave_and_disconnect_notify_alike(open_table):
    code = create(open_table)
    join_open(open_table, code)
    left = dispatch("leave-call", "Y", {"callCode": code}, open_table)

    other = create(open_table, "A")
    join_open(open_table, other, joiner="B")
    dropped = handlers.disconnect("B", open_table)

    assert [o.event for o in left] == [o.event for o in dropped]
    assert set(left[0].data) == set(dropped[0].data)


def test_leave_twice_is_noop(open_table):
    code = create(open_table)
    join_open(open_table, code)
    assert len(dispatch("leave-call", "Y", {"callCode": code}, open_table)) == 1
    assert dispatch("leave-call", "Y", {"callCode": code}, open_table) == []


def test_last_member_leaving_deletes_call(gated):
    code = create(gated)
    assert dispatch("leave-call", "X", {"callCode": code}, gated) == []
    assert gated.get(code) is None
    assert pairs(dispatch("join-call", "Y", {"callCode": code}, gated)) == [("Y", "call-not-found")]


def test_creator_leaving_with_pending_joiner_ends_call(gated):
    code = create(gated)
    dispatch("join-call", "Y", {"callCode": code}, gated)
    out = dispatch("leave-call", "X", {"callCode": code}, gated)
    assert pairs(out) == [("Y", "call-ended")]
    assert out[0].data["reason"] == "creator-left"
    assert gated.get(code) is None
    assert gated.call_of("Y") is None


def test_creator_leaves_delete_policy(deleting):
    code = create(deleting)
    join_open(deleting, code)
    out = dispatch("leave-call", "X", {"callCode": code}, deleting)
    assert pairs(out) == [("Y", "call-ended")]
    assert deleting.get(code) is None
    assert deleting.call_of("Y") is None


def test_creator_leaves_transfer_policy(open_table):
    code = create(open_table)
    join_open(open_table, code)
    out = dispatch("leave-call", "X", {"callCode": code}, open_table)
    assert pairs(out) == [("Y", "participant-left")]
    assert out[0].data["creatorId"] == "Y"
    assert open_table.get(code).creator_id == "Y"


def test_pending_joiner_disconnect_tells_creator(gated):
    code = create(gated)
    dispatch("join-call", "Y", {"callCode": code}, gated)
    out = handlers.disconnect("Y", gated)
    assert pairs(out) == [("X", "participant-left")]
    assert out[0].data["wasPending"] is True
    assert gated.get(code).pending_joiner is None


def test_join_errors(gated):
    code = create(gated)
    assert pairs(dispatch("join-call", "Y", {"callCode": "ZZZZZZ"}, gated)) == [("Y", "call-not-found")]
    assert pairs(dispatch("join-call", "X", {"callCode": code}, gated)) == [("X", "already-in-call")]

    dispatch("join-call", "Y", {"callCode": code}, gated)
    assert pairs(dispatch("join-call", "Y", {"callCode": code}, gated)) == [("Y", "already-in-call")]
    assert pairs(dispatch("join-call", "Z", {"callCode": code}, gated)) == [("Z", "call-busy")]

    dispatch("accept-participant", "X", {"callCode": code, "participantId": "Y"}, gated)
    out = dispatch("join-call", "Z", {"callCode": code}, gated)
    assert pairs(out) == [("Z", "call-full")]
    assert out[0].data["reason"] == "call-full"


def test_join_accepts_lowercase_code_alias(open_table):
    code = create(open_table)
    out = dispatch("join-call", "Y", {"code": code.lower()}, open_table)
    assert pairs(out)[0] == ("Y", "call-joined")


def test_accept_errors_name_the_reason(gated):
    code = create(gated)

    def reason(sender, target):
        out = dispatch("accept-participant", sender, {"callCode": code, "participantId": target}, gated)
        assert pairs(out) == [(sender, "call-error")]
        return out[0].data["reason"]

    assert reason("X", "Y") == "no-waiting-participant"
    dispatch("join-call", "Y", {"callCode": code}, gated)
    assert reason("Y", "Y") == "not-creator"
    assert reason("X", "Z") == "invalid-target"
    assert gated.get(code).members == ["X"]


def test_relay_forwards_payload_unchanged(open_table):
    code = create(open_table)
    join_open(open_table, code)
    offer = {"type": "offer", "sdp": "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1\r\n"}

    out = dispatch("send-offer", "X", {"callCode": code, "offer": offer}, open_table)
    assert pairs(out) == [("Y", "receive-offer")]
    assert out[0].data == {"from": "X", "callCode": code, "offer": offer}

    out = dispatch("send-answer", "Y", {"callCode": code, "payload": "answer-blob"}, open_table)
    assert pairs(out) == [("X", "receive-answer")]
    assert out[0].data["answer"] == "answer-blob"

    out = dispatch("send-ice-candidate", "Y", {"callCode": code, "candidate": {"candidate": "c1"}}, open_table)
    assert out[0].data["candidate"] == {"candidate": "c1"}


def test_relay_drops_silently(gated):
    code = create(gated)
    assert dispatch("send-offer", "X", {"callCode": code, "offer": "o"}, gated) == []
    assert dispatch("send-offer", "X", {"callCode": "NOPE00", "offer": "o"}, gated) == []
    join_gated(gated, code)
    assert dispatch("send-offer", "Z", {"callCode": code, "offer": "o"}, gated) == []


def test_relay_refreshes_activity(open_table, clock):
    code = create(open_table)
    join_open(open_table, code)
    clock.advance(30)
    dispatch("send-ice-candidate", "X", {"callCode": code, "candidate": "c"}, open_table)
    assert open_table.get(code).last_activity_at == clock.now


def test_heartbeat(gated, clock):
    code = create(gated)
    clock.advance(10)
    out = dispatch("heartbeat", "X", {"callCode": code}, gated)
    assert pairs(out) == [("X", "heartbeat-ack")]
    assert gated.get(code).last_activity_at == clock.now
    assert dispatch("heartbeat", "Q", {"callCode": code}, gated) == []


def test_malformed_and_unknown_events(gated):
    out = dispatch("join-call", "Y", {}, gated)
    assert pairs(out) == [("Y", "call-error")]
    assert out[0].data["reason"] == "invalid-message"

    out = dispatch("make-coffee", "Y", {}, gated)
    assert out[0].data["reason"] == "unknown-event"


def test_concurrent_join_requests(open_table):
    code = create(open_table)
    barrier = threading.Barrier(2)
    replies = {}

    def join(endpoint_id):
        barrier.wait()
        replies[endpoint_id] = dispatch("join-call", endpoint_id, {"callCode": code}, open_table)[0].event

    threads = [threading.Thread(target=join, args=(e,)) for e in ("Y", "Z")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(replies.values()) == ["call-full", "call-joined"]
    assert len(open_table.get(code).members) == 2


def test_concurrent_join_requests_gated(gated):
    for _ in range(50):
        code = create(gated, "X")
        barrier = threading.Barrier(2)
        replies = {}

        def join(endpoint_id):
            barrier.wait()
            replies[endpoint_id] = dispatch("join-call", endpoint_id, {"callCode": code}, gated)[0].event

        threads = [threading.Thread(target=join, args=(e,)) for e in ("Y", "Z")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(replies.values()) == ["call-busy", "call-waiting-for-approval"]
        call = gated.get(code)
        assert call.members == ["X"]
        waiting = call.pending_joiner
        refused = "Z" if waiting == "Y" else "Y"
        assert gated.call_of(waiting) == code
        assert gated.call_of(refused) is None

        dispatch("leave-call", "X", {"callCode": code}, gated)
        assert len(gated) == 0
        assert gated.call_of(waiting) is None


def test_one_endpoint_joining_two_calls_at_once(open_table):
    for _ in range(50):
        first = create(open_table, "A")
        second = create(open_table, "B")
        barrier = threading.Barrier(2)
        replies = {}

        def join(code):
            barrier.wait()
            replies[code] = dispatch("join-call", "E", {"callCode": code}, open_table)[0].event

        threads = [threading.Thread(target=join, args=(c,)) for c in (first, second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(replies.values()) == ["already-in-call", "call-joined"]
        joined = first if replies[first] == "call-joined" else second
        other = second if joined == first else first
        assert open_table.call_of("E") == joined
        assert open_table.get(joined).members[-1] == "E"
        assert "E" not in open_table.get(other).members

        for code in (first, second):
            open_table.delete(code)
