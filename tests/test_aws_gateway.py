"""
Tests for the boto3 gateway against mocked clients.
"""

from unittest.mock import MagicMock, patch

from acctpool.config import PayerConfig
from acctpool.gateway.aws import AwsIam, AwsOrganizations, AwsSts, AwsTagging, BOTO_CONFIG, connect
from acctpool.models import AccountStatus, Credentials


def client_with_pages(**pages):
    """MagicMock client whose paginators return the given pages per operation."""
    client = MagicMock()
    client.paginators = {}

    def get_paginator(operation):
        paginator = MagicMock()
        paginator.paginate.return_value = pages.get(operation, [{}])
        client.paginators[operation] = paginator
        return paginator

    client.get_paginator.side_effect = get_paginator
    return client


class TestAwsOrganizations:
    """Test Organizations calls and pagination."""

    def test_list_accounts_for_parent(self):
        client = client_with_pages(list_accounts_for_parent=[
            {"Accounts": [{"Id": "111111111111", "Status": "ACTIVE", "Name": "a", "Email": "a@example.com"}]},
            {"Accounts": [{"Id": "222222222222", "Status": "SUSPENDED"}]},
        ])

        accounts = AwsOrganizations(client).list_accounts_for_parent("r-0wd6")

        assert [a.id for a in accounts] == ["111111111111", "222222222222"]
        assert accounts[0].status is AccountStatus.ACTIVE
        assert accounts[1].status is AccountStatus.SUSPENDED
        assert accounts[0].parent_id == "r-0wd6"
        client.get_paginator.assert_called_with("list_accounts_for_parent")

    def test_unknown_status(self):
        client = client_with_pages(list_accounts_for_parent=[{"Accounts": [{"Id": "1", "Status": "NEW"}]}])

        assert AwsOrganizations(client).list_accounts_for_parent("r-0wd6")[0].status is AccountStatus.UNKNOWN

    def test_list_tags_for_resource(self):
        client = client_with_pages(list_tags_for_resource=[
            {"Tags": [{"Key": "owner", "Value": "alice"}]},
            {"Tags": [{"Key": "claimed", "Value": "true"}]},
        ])

        assert AwsOrganizations(client).list_tags_for_resource("111111111111") == \
            {"owner": "alice", "claimed": "true"}

    def test_tag_and_untag(self):
        client = MagicMock()
        orgs = AwsOrganizations(client)

        orgs.tag_resource("111111111111", {"owner": "alice", "claimed": "true"})
        orgs.untag_resource("111111111111", ["owner", "claimed"])

        client.tag_resource.assert_called_once_with(
            ResourceId="111111111111",
            Tags=[{"Key": "owner", "Value": "alice"}, {"Key": "claimed", "Value": "true"}],
        )
        client.untag_resource.assert_called_once_with(ResourceId="111111111111", TagKeys=["owner", "claimed"])

    def test_move_account(self):
        client = MagicMock()

        AwsOrganizations(client).move_account("111111111111", "r-0wd6", "ou-0wd6-z6tzkjek")

        client.move_account.assert_called_once_with(
            AccountId="111111111111", SourceParentId="r-0wd6", DestinationParentId="ou-0wd6-z6tzkjek",
        )

    def test_list_parent(self):
        client = client_with_pages(list_parents=[{"Parents": [{"Id": "ou-0wd6-z6tzkjek", "Type": "ORGANIZATIONAL_UNIT"}]}])

        assert AwsOrganizations(client).list_parent("111111111111") == "ou-0wd6-z6tzkjek"

    def test_create_account(self):
        client = MagicMock()
        client.create_account.return_value = {"CreateAccountStatus": {"Id": "car-1", "State": "IN_PROGRESS"}}
        client.describe_create_account_status.return_value = {
            "CreateAccountStatus": {"Id": "car-1", "State": "SUCCEEDED", "AccountId": "555555555555"},
        }
        orgs = AwsOrganizations(client)

        assert orgs.create_account("osd-creds-mgmt+abc123", "osd-creds-mgmt+abc123@redhat.com") == "car-1"
        assert orgs.describe_create_account_status("car-1")["AccountId"] == "555555555555"
        client.describe_create_account_status.assert_called_once_with(CreateAccountRequestId="car-1")


class TestAwsTagging:

    def test_get_resource_arns(self):
        client = client_with_pages(get_resources=[
            {"ResourceTagMappingList": [{"ResourceARN": "arn:aws:organizations::999999999999:account/o-1/111111111111"}]},
            {"ResourceTagMappingList": [{"ResourceARN": "arn:aws:organizations::999999999999:account/o-1/222222222222"}]},
        ])

        arns = AwsTagging(client).get_resource_arns("owner", "alice")

        assert len(arns) == 2
        client.paginators["get_resources"].paginate.assert_called_once_with(
            TagFilters=[{"Key": "owner", "Values": ["alice"]}],
        )


class TestAwsSts:

    def test_assume_role(self):
        client = MagicMock()
        client.assume_role.return_value = {
            "Credentials": {"AccessKeyId": "ASIA", "SecretAccessKey": "secret", "SessionToken": "token",
                            "Expiration": None},
            "AssumedRoleUser": {"Arn": "arn:aws:sts::111111111111:assumed-role/Admin/acctpool-111111111111"},
        }

        creds = AwsSts(client).assume_role("arn:aws:iam::111111111111:role/Admin", "acctpool-111111111111", 900)

        assert creds.access_key_id == "ASIA"
        assert creds.assumed_role_arn.endswith("acctpool-111111111111")
        client.assume_role.assert_called_once_with(
            RoleArn="arn:aws:iam::111111111111:role/Admin",
            RoleSessionName="acctpool-111111111111",
            DurationSeconds=900,
        )


class TestAwsIam:
    """Test IAM listing shapes and delete calls."""

    def test_list_roles(self):
        client = client_with_pages(list_roles=[{"Roles": [
            {"RoleName": "tenant", "Arn": "arn:aws:iam::1:role/tenant", "Path": "/"},
            {"RoleName": "AWSServiceRoleForSupport", "Arn": "arn", "Path": "/aws-service-role/support.amazonaws.com/"},
        ]}])

        roles = AwsIam(client).list_roles()

        assert [r.name for r in roles] == ["tenant", "AWSServiceRoleForSupport"]
        assert roles[1].path.startswith("/aws-service-role/")

    def test_list_local_policies(self):
        client = client_with_pages(list_policies=[{"Policies": [
            {"PolicyName": "p", "Arn": "arn:aws:iam::1:policy/p", "DefaultVersionId": "v2"},
        ]}])
        iam = AwsIam(client)

        policies = iam.list_local_policies()

        assert policies[0].default_version_id == "v2"
        client.paginators["list_policies"].paginate.assert_called_once_with(Scope="Local")

    def test_list_entities_for_policy(self):
        client = client_with_pages(list_entities_for_policy=[
            {"PolicyUsers": [{"UserName": "dev"}], "PolicyGroups": [{"GroupName": "devs"}]},
            {"PolicyRoles": [{"RoleName": "tenant"}]},
        ])

        entities = AwsIam(client).list_entities_for_policy("arn:aws:iam::1:policy/p")

        assert entities.users == ["dev"]
        assert entities.groups == ["devs"]
        assert entities.roles == ["tenant"]

    def test_user_listings(self):
        client = client_with_pages(
            list_users=[{"Users": [{"UserName": "dev"}]}],
            list_access_keys=[{"AccessKeyMetadata": [{"AccessKeyId": "AKIA1"}]}],
            list_signing_certificates=[{"Certificates": [{"CertificateId": "CERT1"}]}],
            list_attached_user_policies=[{"AttachedPolicies": [{"PolicyArn": "arn:p", "PolicyName": "p"}]}],
            list_groups_for_user=[{"Groups": [{"GroupName": "devs"}]}],
            list_user_policies=[{"PolicyNames": ["inline"]}],
        )
        iam = AwsIam(client)

        assert iam.list_users() == ["dev"]
        assert iam.list_access_keys("dev") == ["AKIA1"]
        assert iam.list_signing_certificates("dev") == ["CERT1"]
        assert iam.list_attached_user_policies("dev") == ["arn:p"]
        assert iam.list_groups_for_user("dev") == ["devs"]
        assert iam.list_user_policies("dev") == ["inline"]

    def test_delete_calls(self):
        client = MagicMock()
        iam = AwsIam(client)

        iam.delete_access_key("dev", "AKIA1")
        iam.remove_user_from_group("dev", "devs")
        iam.delete_policy_version("arn:p", "v2")
        iam.delete_user("dev")

        client.delete_access_key.assert_called_once_with(UserName="dev", AccessKeyId="AKIA1")
        client.remove_user_from_group.assert_called_once_with(UserName="dev", GroupName="devs")
        client.delete_policy_version.assert_called_once_with(PolicyArn="arn:p", VersionId="v2")
        client.delete_user.assert_called_once_with(UserName="dev")


class TestConnect:
    """Test gateway construction from a payer."""

    @patch("acctpool.gateway.aws.boto3.Session")
    def test_connect_uses_payer_profile(self, mock_session):
        payer = PayerConfig(name="osd-staging-1", root_id="r-0wd6", claimed_ou_id="ou-0wd6-z6tzkjek")

        gateway = connect(payer)

        mock_session.assert_called_once_with(profile_name="osd-staging-1", region_name="us-east-1")
        clients = [c.args[0] for c in mock_session.return_value.client.call_args_list]
        assert clients == ["organizations", "resourcegroupstaggingapi", "sts"]
        assert mock_session.return_value.client.call_args.kwargs["config"] is BOTO_CONFIG
        assert isinstance(gateway.organizations, AwsOrganizations)

    @patch("acctpool.gateway.aws.boto3.Session")
    def test_iam_for_uses_assumed_credentials(self, mock_session):
        payer = PayerConfig(name="p", root_id="r-1", claimed_ou_id="ou-1", region="eu-west-1")
        gateway = connect(payer, session=MagicMock())

        iam = gateway.iam_for(Credentials("ASIA", "secret", "token"))

        mock_session.assert_called_once_with(
            aws_access_key_id="ASIA", aws_secret_access_key="secret", aws_session_token="token",
            region_name="eu-west-1",
        )
        mock_session.return_value.client.assert_called_once_with("iam", config=BOTO_CONFIG)
        assert isinstance(iam, AwsIam)
