from typing import Dict, List, Optional

from aws_cdk import (
    Duration,
    aws_ec2 as ec2,
    aws_lambda as _lambda,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from pinecone_provisioning.models import VectorStoreDescriptor


class PineconeVectorStore(Construct):
    """
    Declares which Pinecone index the stack provisions and where its API key lives.

    The descriptor is validated at synth time, so a bad index name fails `cdk synth`.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        api_key_secret: secretsmanager.ISecret,
        environment: str,
        index_name: str,
    ) -> None:
        super().__init__(scope, construct_id)

        self.api_key_secret = api_key_secret
        self.descriptor = VectorStoreDescriptor(
            index_name=index_name,
            environment=environment,
            credential_ref=api_key_secret.secret_arn,
        )

    @property
    def index_name(self) -> str:
        return self.descriptor.index_name

    @property
    def environment(self) -> str:
        return self.descriptor.environment

    def lambda_environment(self) -> Dict[str, str]:
        """Environment variables the create-index function reads its descriptor from."""
        return {
            "PINECONE_API_KEY_SECRET_ARN": self.descriptor.credential_ref,
            "PINECONE_ENVIRONMENT": self.descriptor.environment,
            "PINECONE_INDEX_NAME": self.descriptor.index_name,
        }


class AgentLambda(Construct):
    """Python Lambda function running in the VPC's private subnets."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        code_path: str,
        vpc: ec2.IVpc,
        handler: str = "handler.lambda_handler",
        environment: Optional[Dict[str, str]] = None,
        layers: Optional[List[_lambda.ILayerVersion]] = None,
        timeout: Duration = Duration.minutes(3),
    ) -> None:
        super().__init__(scope, construct_id)

        self.function = _lambda.Function(
            self, "Function",
            runtime=_lambda.Runtime.PYTHON_3_11,
            architecture=_lambda.Architecture.ARM_64,  # Match layer architecture
            handler=handler,
            code=_lambda.Code.from_asset(code_path),
            environment=environment,
            layers=layers,
            timeout=timeout,
            memory_size=256,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )
