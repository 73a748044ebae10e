#!/usr/bin/env python3
"""
Real log lines against the shipped pattern groups.

Every definition in every group must compile, and the well-known top-level
patterns must decode representative lines into the documented fields.
"""
import pytest

from grokline.patterns import GrokCompiler, PatternGroup, PatternStore, get_repository
from tests.conftest import assert_fields, make_cache


@pytest.fixture(scope="module")
def full_compiler():
    store = PatternStore.from_groups(*PatternGroup)
    grok_compiler = GrokCompiler(store, cache=make_cache(max_size=2000))
    yield grok_compiler
    grok_compiler.close()


class TestEveryDefinitionCompiles:
    @pytest.mark.parametrize("group", list(PatternGroup), ids=lambda g: g.file_name)
    def test_group(self, full_compiler, group):
        failures = {}
        for name in get_repository().get_pattern_names(group):
            try:
                full_compiler.compile(f"%{{{name}}}")
            except Exception as e:
                failures[name] = str(e)
        assert failures == {}, f"{len(failures)} definitions in {group.file_name} failed to compile"


class TestWebServerLogs:
    def test_common_apache_log(self, full_compiler):
        line = '192.168.1.1 - john [10/Oct/2023:13:55:36 -0700] "GET /index.html HTTP/1.1" 200 1234'
        expected = {
            "clientip": "192.168.1.1",
            "ident": "-",
            "auth": "john",
            "timestamp": "10/Oct/2023:13:55:36 -0700",
            "verb": "GET",
            "request": "/index.html",
            "httpversion": "1.1",
            "rawrequest": None,
            "response": "200",
            "bytes": "1234",
        }
        assert_fields(line, expected, full_compiler.compile("%{COMMONAPACHELOG}").match(line))

    def test_combined_apache_log(self, full_compiler):
        line = (
            '10.0.0.5 - - [01/Feb/2024:08:00:01 +0000] "POST /api/v1/items?id=7 HTTP/2.0" 201 - '
            '"https://example.com/" "curl/8.4.0"'
        )
        result = full_compiler.compile("%{COMBINEDAPACHELOG}").match(line)
        assert result is not None
        assert result["request"] == "/api/v1/items?id=7"
        assert result["bytes"] is None
        assert result["referrer"] == '"https://example.com/"'
        assert result["agent"] == '"curl/8.4.0"'

    def test_raw_request_alternative(self, full_compiler):
        line = '127.0.0.1 - - [10/Oct/2023:13:55:36 -0700] "-" 408 -'
        result = full_compiler.compile("%{COMMONAPACHELOG}").match(line)
        assert result["rawrequest"] == "-"
        assert result["verb"] is None


class TestSystemLogs:
    def test_syslog_line(self, full_compiler):
        line = "Oct 11 22:14:15 mymachine sshd[4123]: Accepted password for bob"
        result = full_compiler.compile("%{SYSLOGLINE}").match(line)
        assert result["timestamp"] == "Oct 11 22:14:15"
        assert result["logsource"] == "mymachine"
        assert result["program"] == "sshd"
        assert result["pid"] == "4123"
        assert result["message"] == "Accepted password for bob"
        assert result["timestamp8601"] is None

    def test_syslog_base_with_typed_pid(self, full_compiler):
        full_compiler.register("MYSYSLOG", "%{SYSLOGTIMESTAMP:[log][time]} %{HOSTNAME:[host][name]} %{PROG:[process][name]}\\[%{POSINT:[process][pid]:int}\\]")
        line = "Jan  5 01:02:03 web-01 nginx[77]: started"
        assert full_compiler.compile("%{MYSYSLOG}").match(line).fields == {
            "log": {"time": "Jan  5 01:02:03"},
            "host": {"name": "web-01"},
            "process": {"name": "nginx", "pid": 77},
        }


class TestApplicationLogs:
    def test_java_stack_trace_line(self, full_compiler):
        line = "    at com.example.Foo.bar(Foo.java:42)"
        expected = {"class": "com.example.Foo", "method": "bar", "file": "Foo.java", "line": "42"}
        assert_fields(line, expected, full_compiler.compile("%{JAVASTACKTRACEPART}").match(line))

    def test_java_native_method(self, full_compiler):
        line = "\tat java.lang.Thread.run(Native Method)"
        result = full_compiler.compile("%{JAVASTACKTRACEPART}").match(line)
        assert result["file"] == "Native Method"
        assert result["line"] is None

    def test_ruby_logger(self, full_compiler):
        line = "I, [2023-10-11T22:14:15.003 #1234]  INFO -- main: started worker"
        expected = {
            "timestamp": "2023-10-11T22:14:15.003",
            "pid": "1234",
            "loglevel": "INFO",
            "progname": "main",
            "message": "started worker",
        }
        assert_fields(line, expected, full_compiler.compile("%{RUBY_LOGGER}").match(line))


class TestDatabaseLogs:
    def test_redis_log(self, full_compiler):
        line = "[4018] 14 Nov 07:01:22.119 *"
        expected = {"pid": "4018", "timestamp": "14 Nov 07:01:22.119"}
        assert_fields(line, expected, full_compiler.compile("%{REDISLOG}").match(line))

    def test_mongo_log(self, full_compiler):
        line = "Mar  3 12:00:00 [conn1] end connection 10.0.0.2:51234"
        result = full_compiler.compile("%{MONGO_LOG}").match(line)
        assert result["component"] == "conn1"
        assert result["message"] == "end connection 10.0.0.2:51234"

    def test_mongo_slow_query_named_body_group(self, full_compiler):
        line = (
            'query mydb.users query: { name: "x" } ntoreturn:0 ntoskip:0 nscanned:10 '
            "keyUpdates:0 numYields:0 nreturned:1 reslen:50 120ms"
        )
        result = full_compiler.compile("%{MONGO_SLOWQUERY}").match(line)
        assert result["database"] == "mydb"
        assert result["collection"] == "users"
        assert result["query"] == '{ name: "x" }'
        assert result["nscanned"] == "10"
        assert result["duration"] == "120"

    def test_postgresql(self, full_compiler):
        line = "10-11-2023 22:14:15 UTC postgres 5f2a 4321"
        result = full_compiler.compile("%{POSTGRESQL}").match(line)
        assert result["timestamp"] == "10-11-2023 22:14:15"
        assert result["user_id"] == "postgres"
        assert result["connection_id"] == "5f2a"
        assert result["pid"] == "4321"


class TestLoadBalancerLogs:
    def test_haproxy_http(self, full_compiler):
        line = (
            "Oct 11 22:14:15 haproxy[12345]: 10.0.0.1:12345 [11/Oct/2023:22:14:15.123] frontend backend/server "
            '10/20/30/40/50 200 1234 - - ---- 1/2/3/4/0 5/6 "GET /api/users HTTP/1.1"'
        )
        result = full_compiler.compile("%{HAPROXYHTTP}").match(line)
        assert result is not None
        assert result["syslog_server"] is None
        assert (result["program"], result["pid"]) == ("haproxy", "12345")
        assert (result["client_ip"], result["client_port"]) == ("10.0.0.1", "12345")
        assert result["haproxy_milliseconds"] == "123"
        assert (result["frontend_name"], result["backend_name"], result["server_name"]) == (
            "frontend",
            "backend",
            "server",
        )
        assert result["time_duration"] == "50"
        assert result["http_status_code"] == "200"
        assert result["termination_state"] == "----"
        assert (result["http_verb"], result["http_request"], result["http_version"]) == ("GET", "/api/users", "1.1")

    def test_elb_access_log_typed_fields(self, full_compiler):
        line = (
            "2015-05-13T23:39:43.945958Z my-loadbalancer 192.168.131.39:2817 10.0.0.1:80 0.000073 0.001048 "
            '0.000057 200 200 0 29 "GET http://www.example.com:80/ HTTP/1.1"'
        )
        result = full_compiler.compile("%{ELB_ACCESS_LOG}").match(line)
        assert result is not None
        assert result["elb"] == "my-loadbalancer"
        assert (result["clientip"], result["clientport"]) == ("192.168.131.39", 2817)
        assert result["request_processing_time"] == pytest.approx(0.000073)
        assert (result["response"], result["bytes"]) == (200, 29)
        assert result["verb"] == "GET"
        assert result["request"] == "http://www.example.com:80/"
        assert result["urihost"] == "www.example.com:80"
        assert result["httpversion"] == "1.1"


class TestNetworkLogs:
    def test_bind9_query(self, full_compiler):
        line = (
            "11-Oct-2023 22:14:15.123 queries: info: client @0x7f1 10.0.0.2#53211 (example.com): "
            "query: example.com IN A + (10.0.0.53)"
        )
        expected = {
            "timestamp": "11-Oct-2023 22:14:15.123",
            "category": "queries",
            "loglevel": "info",
            "clientip": "10.0.0.2",
            "clientport": "53211",
            "query": "example.com",
            "question": "example.com",
            "querytype": "A",
            "flags": "+",
            "dns": "10.0.0.53",
        }
        assert_fields(line, expected, full_compiler.compile("%{BIND9}").match(line))

    def test_iptables(self, full_compiler):
        line = (
            "IN=eth0 OUT= MAC=00:11:22:33:44:55:66:77:88:99:aa:bb:08:00 SRC=10.0.0.1 DST=10.0.0.2 LEN=60 "
            "TOS=0x00 PREC=0x00 TTL=64 ID=54321 DF PROTO=TCP SPT=51000 DPT=22 WINDOW=29200 RES=0x00 SYN URGP=0"
        )
        result = full_compiler.compile("%{IPTABLES}").match(line)
        assert result is not None
        assert (result["in_interface"], result["out_interface"]) == ("eth0", None)
        assert (result["dst_mac"], result["src_mac"]) == ("00:11:22:33:44:55", "66:77:88:99:aa:bb")
        assert (result["src_ip"], result["dst_ip"]) == ("10.0.0.1", "10.0.0.2")
        assert result["fragment_flags"] == "DF"
        assert (result["protocol"], result["src_port"], result["dst_port"]) == ("TCP", "51000", "22")
        assert result["tcp_window"] == "29200"

    def test_cisco_asa_connection_denied(self, full_compiler):
        line = "Inbound TCP connection denied from 10.1.1.1/4444 to 10.2.2.2/80 flags SYN on interface outside"
        expected = {
            "direction": "Inbound",
            "protocol": "TCP",
            "action": "denied",
            "src_ip": "10.1.1.1",
            "src_port": "4444",
            "dst_ip": "10.2.2.2",
            "dst_port": "80",
            "tcp_flags": "SYN",
            "interface": "outside",
        }
        assert_fields(line, expected, full_compiler.compile("%{CISCOFW106001}").match(line))


class TestRailsAndMailLogs:
    def test_rails_request_start(self, full_compiler):
        line = 'Started GET "/users/1" for 127.0.0.1 at 2023-10-11 22:14:15 +0000'
        result = full_compiler.compile("%{RAILS3HEAD}").match(line)
        assert (result["verb"], result["request"], result["clientip"]) == ("GET", "/users/1", "127.0.0.1")
        assert result["timestamp"] == "2023-10-11 22:14:15 +0000"

    def test_rails_processing_with_parameters(self, full_compiler):
        line = 'Processing by UsersController#show as HTML Parameters: {"id"=>"1"}'
        expected = {"controller": "UsersController", "action": "show", "format": "HTML", "params": '"id"=>"1"'}
        assert_fields(line, expected, full_compiler.compile("%{RPROCESSING}").match(line))

    def test_postfix_rejected_recipient(self, full_compiler):
        line = (
            "NOQUEUE: reject: RCPT from unknown[192.0.2.1]: 554 5.7.1 <spam@example.com>: Relay access denied; "
            "from=<a@example.org> to=<spam@example.com> proto=ESMTP helo=<mail.example.org>"
        )
        result = full_compiler.compile("%{POSTFIX_SMTPD_NOQUEUE}").match(line)
        assert result is not None
        assert (result["postfix_queueid"], result["postfix_action"]) == ("NOQUEUE", "reject")
        assert result["postfix_smtp_stage"] == "RCPT"
        assert (result["postfix_client_hostname"], result["postfix_client_ip"]) == ("unknown", "192.0.2.1")
        assert (result["postfix_status_code"], result["postfix_status_code_enhanced"]) == ("554", "5.7.1")
        assert result["postfix_status_data"] == "spam@example.com"
        assert result["postfix_status_message"] == "Relay access denied"
        assert result["postfix_keyvalue_data"].startswith("from=<a@example.org>")


class TestMonitoringLogs:
    def test_nagios_service_alert(self, full_compiler):
        line = "[1427925600] SERVICE ALERT: web01;HTTP;CRITICAL;HARD;3;Connection refused"
        result = full_compiler.compile("%{NAGIOSLOGLINE}").match(line)
        assert result["nagios_epoch"] == "1427925600"
        assert result["nagios_type"] == "SERVICE ALERT"
        assert (result["nagios_hostname"], result["nagios_service"]) == ("web01", "HTTP")
        assert (result["nagios_state"], result["nagios_statelevel"], result["nagios_attempt"]) == ("CRITICAL", "HARD", "3")
        assert result["nagios_message"] == "Connection refused"

    def test_mcollective_log(self, full_compiler):
        line = "I, [2023-10-11T22:14:15.123456 #1234]  INFO -- mcollectived: Starting in the background"
        expected = {
            "timestamp": "2023-10-11T22:14:15.123456",
            "pid": "1234",
            "event_level": "INFO",
            "progname": "mcollectived",
            "message": "Starting in the background",
        }
        assert_fields(line, expected, full_compiler.compile("%{MCOLLECTIVELOG}").match(line))
