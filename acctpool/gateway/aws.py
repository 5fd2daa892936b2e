"""
boto3 implementation of the cloud gateway.
"""

from typing import Any, Dict, List, Optional
import logging

import boto3
from botocore.config import Config

from ..config import PayerConfig
from ..models import Account, AccountStatus, Credentials, IamRole, ManagedPolicy, PolicyEntities
from ..tags import tags_from_aws, tags_to_aws
from .base import CloudGateway, IamGateway, OrganizationsGateway, StsGateway, TaggingGateway

logger = logging.getLogger(__name__)

# Retries stay inside botocore; the engine itself never retries.
BOTO_CONFIG = Config(retries={"mode": "standard", "max_attempts": 5})


def _paginate(client, operation: str, result_key: str, **kwargs) -> List[Any]:
    items: List[Any] = []
    paginator = client.get_paginator(operation)
    for page in paginator.paginate(**kwargs):
        items.extend(page.get(result_key, []))
    return items


class AwsOrganizations(OrganizationsGateway):
    def __init__(self, client):
        self.client = client

    def list_accounts_for_parent(self, parent_id: str) -> List[Account]:
        accounts = []
        for item in _paginate(self.client, "list_accounts_for_parent", "Accounts", ParentId=parent_id):
            accounts.append(Account(
                id=item["Id"],
                status=AccountStatus.parse(item.get("Status") or item.get("State")),
                name=item.get("Name"),
                email=item.get("Email"),
                parent_id=parent_id,
            ))
        logger.debug(f"Listed {len(accounts)} accounts under {parent_id}")
        return accounts

    def list_tags_for_resource(self, account_id: str) -> Dict[str, str]:
        return tags_from_aws(_paginate(self.client, "list_tags_for_resource", "Tags", ResourceId=account_id))

    def tag_resource(self, account_id: str, tags: Dict[str, str]) -> None:
        self.client.tag_resource(ResourceId=account_id, Tags=tags_to_aws(tags))

    def untag_resource(self, account_id: str, keys: List[str]) -> None:
        self.client.untag_resource(ResourceId=account_id, TagKeys=list(keys))

    def move_account(self, account_id: str, source_parent_id: str, destination_parent_id: str) -> None:
        self.client.move_account(
            AccountId=account_id,
            SourceParentId=source_parent_id,
            DestinationParentId=destination_parent_id,
        )

    def list_parent(self, account_id: str) -> str:
        parents = _paginate(self.client, "list_parents", "Parents", ChildId=account_id)
        # an account has exactly one parent
        return parents[0]["Id"]

    def create_account(self, account_name: str, email: str) -> str:
        response = self.client.create_account(AccountName=account_name, Email=email)
        return response["CreateAccountStatus"]["Id"]

    def describe_create_account_status(self, request_id: str) -> Dict[str, Any]:
        response = self.client.describe_create_account_status(CreateAccountRequestId=request_id)
        return response["CreateAccountStatus"]


class AwsTagging(TaggingGateway):
    def __init__(self, client):
        self.client = client

    def get_resource_arns(self, tag_key: str, tag_value: str) -> List[str]:
        mappings = _paginate(
            self.client, "get_resources", "ResourceTagMappingList",
            TagFilters=[{"Key": tag_key, "Values": [tag_value]}],
        )
        return [mapping["ResourceARN"] for mapping in mappings]


class AwsSts(StsGateway):
    def __init__(self, client):
        self.client = client

    def assume_role(self, role_arn: str, session_name: str, duration_seconds: int) -> Credentials:
        response = self.client.assume_role(
            RoleArn=role_arn,
            RoleSessionName=session_name,
            DurationSeconds=duration_seconds,
        )
        creds = response["Credentials"]
        return Credentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            expiration=creds.get("Expiration"),
            assumed_role_arn=response.get("AssumedRoleUser", {}).get("Arn"),
        )


class AwsIam(IamGateway):
    def __init__(self, client):
        self.client = client

    def list_roles(self) -> List[IamRole]:
        return [
            IamRole(name=role["RoleName"], arn=role["Arn"], path=role.get("Path", "/"))
            for role in _paginate(self.client, "list_roles", "Roles")
        ]

    def list_attached_role_policies(self, role_name: str) -> List[str]:
        attached = _paginate(self.client, "list_attached_role_policies", "AttachedPolicies", RoleName=role_name)
        return [policy["PolicyArn"] for policy in attached]

    def detach_role_policy(self, role_name: str, policy_arn: str) -> None:
        self.client.detach_role_policy(RoleName=role_name, PolicyArn=policy_arn)

    def list_role_policies(self, role_name: str) -> List[str]:
        return _paginate(self.client, "list_role_policies", "PolicyNames", RoleName=role_name)

    def delete_role_policy(self, role_name: str, policy_name: str) -> None:
        self.client.delete_role_policy(RoleName=role_name, PolicyName=policy_name)

    def delete_role(self, role_name: str) -> None:
        self.client.delete_role(RoleName=role_name)

    def list_local_policies(self) -> List[ManagedPolicy]:
        return [
            ManagedPolicy(name=policy["PolicyName"], arn=policy["Arn"],
                          default_version_id=policy.get("DefaultVersionId"))
            for policy in _paginate(self.client, "list_policies", "Policies", Scope="Local")
        ]

    def list_entities_for_policy(self, policy_arn: str) -> PolicyEntities:
        entities = PolicyEntities()
        paginator = self.client.get_paginator("list_entities_for_policy")
        for page in paginator.paginate(PolicyArn=policy_arn):
            entities.users.extend(user["UserName"] for user in page.get("PolicyUsers", []))
            entities.groups.extend(group["GroupName"] for group in page.get("PolicyGroups", []))
            entities.roles.extend(role["RoleName"] for role in page.get("PolicyRoles", []))
        return entities

    def detach_group_policy(self, group_name: str, policy_arn: str) -> None:
        self.client.detach_group_policy(GroupName=group_name, PolicyArn=policy_arn)

    def list_policy_versions(self, policy_arn: str) -> List[Dict[str, Any]]:
        return _paginate(self.client, "list_policy_versions", "Versions", PolicyArn=policy_arn)

    def delete_policy_version(self, policy_arn: str, version_id: str) -> None:
        self.client.delete_policy_version(PolicyArn=policy_arn, VersionId=version_id)

    def delete_policy(self, policy_arn: str) -> None:
        self.client.delete_policy(PolicyArn=policy_arn)

    def list_users(self) -> List[str]:
        return [user["UserName"] for user in _paginate(self.client, "list_users", "Users")]

    def delete_login_profile(self, user_name: str) -> None:
        self.client.delete_login_profile(UserName=user_name)

    def list_access_keys(self, user_name: str) -> List[str]:
        keys = _paginate(self.client, "list_access_keys", "AccessKeyMetadata", UserName=user_name)
        return [key["AccessKeyId"] for key in keys]

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        self.client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)

    def list_signing_certificates(self, user_name: str) -> List[str]:
        certs = _paginate(self.client, "list_signing_certificates", "Certificates", UserName=user_name)
        return [cert["CertificateId"] for cert in certs]

    def delete_signing_certificate(self, user_name: str, certificate_id: str) -> None:
        self.client.delete_signing_certificate(UserName=user_name, CertificateId=certificate_id)

    def list_user_policies(self, user_name: str) -> List[str]:
        return _paginate(self.client, "list_user_policies", "PolicyNames", UserName=user_name)

    def delete_user_policy(self, user_name: str, policy_name: str) -> None:
        self.client.delete_user_policy(UserName=user_name, PolicyName=policy_name)

    def list_attached_user_policies(self, user_name: str) -> List[str]:
        attached = _paginate(self.client, "list_attached_user_policies", "AttachedPolicies", UserName=user_name)
        return [policy["PolicyArn"] for policy in attached]

    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        self.client.detach_user_policy(UserName=user_name, PolicyArn=policy_arn)

    def list_groups_for_user(self, user_name: str) -> List[str]:
        groups = _paginate(self.client, "list_groups_for_user", "Groups", UserName=user_name)
        return [group["GroupName"] for group in groups]

    def remove_user_from_group(self, user_name: str, group_name: str) -> None:
        self.client.remove_user_from_group(UserName=user_name, GroupName=group_name)

    def delete_user(self, user_name: str) -> None:
        self.client.delete_user(UserName=user_name)


def session_for_credentials(credentials: Credentials, region: str) -> boto3.Session:
    return boto3.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=credentials.session_token,
        region_name=region,
    )


def connect(payer: PayerConfig, session: Optional[boto3.Session] = None) -> CloudGateway:
    """
    Build a gateway for a payer from its AWS profile.

    Args:
        payer: Payer configuration (profile and region)
        session: Pre-built boto3 session, mainly for tests

    Returns:
        CloudGateway backed by boto3 clients
    """
    if session is None:
        session = boto3.Session(profile_name=payer.aws_profile, region_name=payer.region)
    logger.debug(f"Connecting to payer {payer.name} with profile {payer.aws_profile} in {payer.region}")

    def sts_for(credentials: Credentials) -> StsGateway:
        return AwsSts(session_for_credentials(credentials, payer.region).client("sts", config=BOTO_CONFIG))

    def iam_for(credentials: Credentials) -> IamGateway:
        return AwsIam(session_for_credentials(credentials, payer.region).client("iam", config=BOTO_CONFIG))

    return CloudGateway(
        organizations=AwsOrganizations(session.client("organizations", config=BOTO_CONFIG)),
        tagging=AwsTagging(session.client("resourcegroupstaggingapi", config=BOTO_CONFIG)),
        sts=AwsSts(session.client("sts", config=BOTO_CONFIG)),
        sts_for=sts_for,
        iam_for=iam_for,
    )
