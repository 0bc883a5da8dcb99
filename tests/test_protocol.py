"""Tests for the login, confirmation, exchange and logout state machine."""

import pytest

from realmauth.service.errors import (
    BadRequestError,
    NoScopeError,
    NoSuchEntityError,
    NoTokenError,
    NotAuthorizedError,
)
from realmauth.service.protocol import AuthStatus, extract_bearer_token
from realmauth.storage.accounts import TEMPORARY_TOKEN_PREFIX
from realmauth.storage.models import AccountStatus, AuthorizationRequest


def _login_and_confirm(protocol, notifier, realm="t", user_id="u"):
    created = protocol.login_request(realm, user_id)
    assert created.status == AuthStatus.CREATED
    confirmed = protocol.confirm_challenge(notifier.last("challenge")[3])
    assert confirmed.status == AuthStatus.NO_CONTENT
    return confirmed.account


def _authorize(protocol, notifier, realm="t", user_id="u", scope="api:read"):
    _login_and_confirm(protocol, notifier, realm, user_id)
    sent = protocol.login_request(realm, user_id)
    assert sent.status == AuthStatus.NO_CONTENT
    result = protocol.exchange_token(
        AuthorizationRequest(
            realm=realm, user_id=user_id, token=notifier.last("token")[3], scope=scope
        )
    )
    assert result.status == AuthStatus.OK
    return result


class TestLoginRequest:
    def test_unknown_user_creates_account_and_sends_challenge(self, protocol, notifier):
        result = protocol.login_request("t", "u")

        assert result.status == AuthStatus.CREATED
        assert result.account.status == AccountStatus.UNCONFIRMED
        assert notifier.last() == ("challenge", "t", "u", result.account.token)

    def test_unconfirmed_account_gets_new_challenge(self, protocol, notifier, clock):
        first = protocol.login_request("t", "u")
        clock.advance(60)

        second = protocol.login_request("t", "u")

        assert second.status == AuthStatus.CREATED
        assert second.account.client_id == first.account.client_id
        assert second.account.token != first.account.token
        assert second.account.expires == clock.now + 600
        assert len(notifier.sent) == 2

    def test_logged_out_account_gets_temporary_token(self, protocol, notifier):
        _login_and_confirm(protocol, notifier)

        result = protocol.login_request("t", "u")

        assert result.status == AuthStatus.NO_CONTENT
        assert result.account.token.startswith(TEMPORARY_TOKEN_PREFIX)
        assert notifier.last() == ("token", "t", "u", result.account.token)

    def test_active_account_is_already_authorized(self, protocol, notifier):
        _authorize(protocol, notifier)
        sent_before = len(notifier.sent)

        result = protocol.login_request("t", "u")

        assert result.status == AuthStatus.FORBIDDEN
        assert result.reason == "already_authorized"
        assert len(notifier.sent) == sent_before

    def test_blocked_account_is_rejected(self, protocol, notifier):
        account = _login_and_confirm(protocol, notifier)
        protocol.block("t", account.client_id)

        result = protocol.login_request("t", "u")

        assert result.status == AuthStatus.FORBIDDEN
        assert result.reason == "account_disabled"

    def test_blocked_unconfirmed_account_gets_no_new_challenge(self, protocol, notifier):
        created = protocol.login_request("t", "u").account
        protocol.block("t", created.client_id)

        result = protocol.login_request("t", "u")

        assert result.status == AuthStatus.FORBIDDEN
        assert result.reason == "account_disabled"
        assert len(notifier.sent) == 1

    @pytest.mark.parametrize("realm,user_id", [("", "u"), ("t", "")])
    def test_bad_input(self, protocol, realm, user_id):
        with pytest.raises(BadRequestError):
            protocol.login_request(realm, user_id)


class TestConfirmChallenge:
    def test_empty_token(self, protocol):
        with pytest.raises(NoTokenError):
            protocol.confirm_challenge("")

    def test_unknown_token(self, protocol):
        result = protocol.confirm_challenge("nothing-like-this")
        assert result.status == AuthStatus.UNAUTHORIZED
        assert result.account is None

    def test_expired_challenge_is_forbidden_and_unchanged(self, protocol, accounts, clock):
        created = protocol.login_request("t", "u").account
        clock.advance(601)

        result = protocol.confirm_challenge(created.token)

        assert result.status == AuthStatus.FORBIDDEN
        stored = accounts.lookup_account("t", created.client_id)
        assert stored.confirmed == 0
        assert stored.status == AccountStatus.UNCONFIRMED
        assert stored.token == created.token

    def test_challenge_valid_at_exact_expiry(self, protocol, clock):
        created = protocol.login_request("t", "u").account
        clock.advance(600)
        assert protocol.confirm_challenge(created.token).status == AuthStatus.NO_CONTENT

    def test_confirm_twice(self, protocol, accounts, clock):
        token = protocol.login_request("t", "u").account.token

        first = protocol.confirm_challenge(token)
        second = protocol.confirm_challenge(token)

        assert first.status == AuthStatus.NO_CONTENT
        assert second.status == AuthStatus.UNAUTHORIZED
        stored = accounts.lookup_account("t", first.account.client_id)
        assert stored.confirmed == clock.now
        assert stored.status == AccountStatus.LOGGED_OUT
        assert stored.token == ""
        assert stored.expires == 0


class TestConfirmLogin:
    def test_confirm_login_sends_temporary_token(self, protocol, notifier, accounts):
        token = protocol.login_request("t", "u").account.token

        result = protocol.confirm_login(token)

        assert result.status == AuthStatus.NO_CONTENT
        assert result.account.token.startswith(TEMPORARY_TOKEN_PREFIX)
        assert notifier.last() == ("token", "t", "u", result.account.token)
        stored = accounts.lookup_account("t", result.account.client_id)
        assert stored.confirmed != 0
        assert stored.status == AccountStatus.LOGGED_OUT

    def test_confirm_login_passes_through_rejections(self, protocol, notifier):
        result = protocol.confirm_login("unknown")
        assert result.status == AuthStatus.UNAUTHORIZED
        assert notifier.sent == []


class TestExchangeToken:
    def test_end_to_end(self, protocol, notifier, accounts, authorizations):
        result = _authorize(protocol, notifier, scope="api:read")

        auth = result.authorization
        assert auth.scope == "api:read"
        assert auth.revoked is False
        stored_account = accounts.find_account_by_user_id("t", "u")
        assert stored_account.status == AccountStatus.ACTIVE
        assert stored_account.token == ""
        assert stored_account.expires == 0
        assert stored_account.login_count == 1
        assert authorizations.find_authorization_by_token(auth.token).equal(auth)

    def test_unknown_account(self, protocol):
        result = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="ghost", token="tt.x", scope="api:read")
        )
        assert result.status == AuthStatus.NOT_FOUND

    def test_missing_token(self, protocol):
        with pytest.raises(BadRequestError):
            protocol.exchange_token(AuthorizationRequest(realm="t", user_id="u"))

    def test_wrong_token_changes_nothing(self, protocol, notifier, accounts, authorizations):
        _login_and_confirm(protocol, notifier)
        protocol.login_request("t", "u")
        before = accounts.find_account_by_user_id("t", "u")

        result = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="u", token="tt.wrong", scope="api:read")
        )

        assert result.status == AuthStatus.UNAUTHORIZED
        after = accounts.find_account_by_user_id("t", "u")
        assert after == before
        assert authorizations.lookup_authorization("t", before.client_id) is None

    def test_expired_temporary_token(self, protocol, notifier, clock):
        _login_and_confirm(protocol, notifier)
        token = protocol.login_request("t", "u").account.token
        clock.advance(601)

        result = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="u", token=token, scope="api:read")
        )
        assert result.status == AuthStatus.UNAUTHORIZED

    def test_first_exchange_without_scope(self, protocol, notifier):
        _login_and_confirm(protocol, notifier)
        token = protocol.login_request("t", "u").account.token

        with pytest.raises(NoScopeError):
            protocol.exchange_token(AuthorizationRequest(realm="t", user_id="u", token=token))

    def test_relogin_rotates_token_and_keeps_scope(self, protocol, notifier, authorizations):
        first = _authorize(protocol, notifier, scope="api:read,api:write")
        client_id = first.account.client_id
        protocol.logout("t", client_id)

        token = protocol.login_request("t", "u").account.token
        second = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="u", token=token), login_from="10.0.0.1"
        )

        assert second.status == AuthStatus.OK
        assert second.authorization.token != first.authorization.token
        assert second.authorization.scope == "api:read,api:write"
        assert second.authorization.revoked is False
        assert second.account.login_count == 2
        assert second.account.login_from == "10.0.0.1"
        assert authorizations.find_authorization_by_token(first.authorization.token) is None


class TestLogoutAndBlock:
    def test_logout_revokes_authorization(self, protocol, notifier, authorizations, accounts):
        result = _authorize(protocol, notifier)
        client_id = result.account.client_id

        out = protocol.logout("t", client_id)

        assert out.status == AuthStatus.NO_CONTENT
        assert accounts.lookup_account("t", client_id).status == AccountStatus.LOGGED_OUT
        assert authorizations.lookup_authorization("t", client_id).revoked is True

    def test_logout_without_authorization(self, protocol, notifier):
        account = _login_and_confirm(protocol, notifier)
        out = protocol.logout("t", account.client_id)
        assert out.status == AuthStatus.NO_CONTENT
        assert out.authorization is None

    def test_logout_of_blocked_account_is_forbidden(self, protocol, notifier, accounts):
        account = _login_and_confirm(protocol, notifier)
        protocol.block("t", account.client_id)

        out = protocol.logout("t", account.client_id)

        assert out.status == AuthStatus.FORBIDDEN
        assert accounts.lookup_account("t", account.client_id).status == AccountStatus.BLOCKED

    def test_logout_unknown_account(self, protocol):
        with pytest.raises(NoSuchEntityError):
            protocol.logout("t", "ghost")

    def test_logout_with_token(self, protocol, notifier, authorizations):
        result = _authorize(protocol, notifier)
        out = protocol.logout_with_token("t", "u", result.authorization.token)
        assert out.status == AuthStatus.NO_CONTENT
        assert authorizations.lookup_authorization("t", result.account.client_id).revoked

    def test_logout_with_foreign_token(self, protocol, notifier):
        result = _authorize(protocol, notifier, user_id="u")
        with pytest.raises(BadRequestError):
            protocol.logout_with_token("t", "someone-else", result.authorization.token)

    def test_logout_with_unknown_token(self, protocol):
        with pytest.raises(NotAuthorizedError):
            protocol.logout_with_token("t", "u", "unknown")

    def test_block_revokes_authorization(self, protocol, notifier, authorizations, accounts):
        result = _authorize(protocol, notifier)
        client_id = result.account.client_id

        out = protocol.block("t", client_id)

        assert out.status == AuthStatus.NO_CONTENT
        assert accounts.lookup_account("t", client_id).status == AccountStatus.BLOCKED
        assert authorizations.lookup_authorization("t", client_id).revoked is True
        with pytest.raises(NotAuthorizedError):
            protocol.check_authorization(result.authorization.token, "api:read")

    def test_block_discards_pending_temporary_token(self, protocol, notifier, accounts):
        created = protocol.login_request("t", "u").account
        pending = protocol.confirm_login(created.token).account.token

        protocol.block("t", created.client_id)

        stored = accounts.lookup_account("t", created.client_id)
        assert stored.token == ""
        assert stored.expires == 0
        result = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="u", token=pending, scope="api:read")
        )
        assert result.status == AuthStatus.FORBIDDEN
        assert accounts.lookup_account("t", created.client_id).status == AccountStatus.BLOCKED

    def test_disabled_account_cannot_exchange(self, protocol, notifier, accounts, authorizations):
        _login_and_confirm(protocol, notifier)
        account = protocol.login_request("t", "u").account
        account.status = AccountStatus.DEACTIVATED
        accounts.update_account(account)

        result = protocol.exchange_token(
            AuthorizationRequest(realm="t", user_id="u", token=account.token, scope="api:read")
        )

        assert result.status == AuthStatus.FORBIDDEN
        assert result.reason == "account_disabled"
        assert authorizations.lookup_authorization("t", account.client_id) is None

    def test_block_unknown_account(self, protocol):
        with pytest.raises(NoSuchEntityError):
            protocol.block("t", "ghost")


class TestDeleteAccount:
    def test_delete_removes_account_and_authorization(self, protocol, notifier, authorizations):
        result = _authorize(protocol, notifier)
        client_id = result.account.client_id

        protocol.delete_account("t", client_id)

        assert authorizations.lookup_authorization("t", client_id) is None
        with pytest.raises(NoSuchEntityError):
            authorizations.delete_authorization("t", client_id)
        with pytest.raises(NoSuchEntityError):
            protocol.delete_account("t", client_id)


class TestCheckAuthorization:
    def test_valid_bearer_with_scope(self, protocol, notifier):
        result = _authorize(protocol, notifier, scope="api:read,api:write")
        auth = protocol.check_authorization(result.authorization.token, "api:write")
        assert auth.client_id == result.account.client_id

    def test_missing_scope(self, protocol, notifier):
        result = _authorize(protocol, notifier, scope="api:read")
        with pytest.raises(NotAuthorizedError):
            protocol.check_authorization(result.authorization.token, "api:admin")

    def test_expired_bearer(self, protocol, notifier, clock):
        result = _authorize(protocol, notifier)
        clock.advance(90 * 86400 + 1)
        with pytest.raises(NotAuthorizedError):
            protocol.check_authorization(result.authorization.token, "api:read")

    def test_after_logout(self, protocol, notifier):
        result = _authorize(protocol, notifier)
        protocol.logout("t", result.account.client_id)
        with pytest.raises(NotAuthorizedError):
            protocol.check_authorization(result.authorization.token, "api:read")

    def test_unknown_bearer(self, protocol):
        with pytest.raises(NotAuthorizedError):
            protocol.check_authorization("unknown", "api:read")


class TestBearerHeader:
    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc123") == "abc123"

    @pytest.mark.parametrize(
        "header", [None, "", "Bearer", "Bearer ", "Basic abc", "bearer abc", "Bearer a b"]
    )
    def test_rejects_malformed(self, header):
        with pytest.raises(NoTokenError):
            extract_bearer_token(header)
