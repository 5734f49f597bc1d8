from typing import Optional

from aws_cdk import (
    CfnOutput,
    CustomResource,
    RemovalPolicy,
    Stack,
    aws_dynamodb as dynamodb,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_lambda as _lambda,
    aws_s3 as s3,
    aws_secretsmanager as secretsmanager,
    custom_resources as cr,
)
from constructs import Construct

from .pinecone_constructs import AgentLambda, PineconeVectorStore


class BedrockAgentPineconeStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        pinecone_environment: str = "us-west1-gcp",
        pinecone_index_name: str = "bedrock-kb-index",
        api_key_secret_arn: Optional[str] = None,
        function_code_path: str = "../src/functions/create_index",
        layer_code_path: str = "../lambda-layer/layer.zip",
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # 1. DynamoDB tables
        chatbot_table = dynamodb.Table(
            self, "ChatbotTable",
            partition_key=dynamodb.Attribute(name="id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST
        )

        agent_table = dynamodb.Table(
            self, "AgentTable",
            partition_key=dynamodb.Attribute(name="id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST
        )

        # 2. S3 bucket for knowledge base documents
        document_bucket = s3.Bucket(
            self, "DocumentBucket",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True
        )

        # 3. VPC
        vpc = ec2.Vpc(self, "BedrockVPC", max_azs=2, nat_gateways=1)

        # 4. IAM roles
        agent_role = iam.Role(
            self, "BedrockAgentRole",
            assumed_by=iam.ServicePrincipal("bedrock.amazonaws.com"),
            description="Role for Bedrock Agent to access necessary resources"
        )

        knowledge_base_role = iam.Role(
            self, "KnowledgeBaseRole",
            assumed_by=iam.CompositePrincipal(
                iam.ServicePrincipal("bedrock.amazonaws.com"),
                iam.ServicePrincipal("lambda.amazonaws.com")
            ),
            description="Role for Knowledge Base to access necessary resources"
        )

        agent_role.add_to_policy(iam.PolicyStatement(
            actions=[
                "dynamodb:GetItem",
                "dynamodb:PutItem",
                "dynamodb:UpdateItem",
                "dynamodb:DeleteItem",
                "dynamodb:Query",
                "dynamodb:Scan",
            ],
            resources=[chatbot_table.table_arn, agent_table.table_arn]
        ))

        knowledge_base_role.add_to_policy(iam.PolicyStatement(
            actions=["bedrock:*"],
            resources=["*"]
        ))

        knowledge_base_role.add_to_policy(iam.PolicyStatement(
            actions=["iam:PassRole"],
            resources=[knowledge_base_role.role_arn]
        ))

        # 5. Pinecone API key secret and index descriptor
        # A new secret is empty until populated, so the index is only created against an existing one
        if api_key_secret_arn:
            pinecone_secret = secretsmanager.Secret.from_secret_complete_arn(
                self, "PineconeApiKey", api_key_secret_arn
            )
        else:
            pinecone_secret = secretsmanager.Secret(
                self, "PineconeApiKey",
                description="API key for Pinecone, stored as {\"apiKey\": \"...\"}"
            )

        vector_store = PineconeVectorStore(
            self, "PineconeVectorStore",
            api_key_secret=pinecone_secret,
            environment=pinecone_environment,
            index_name=pinecone_index_name
        )

        # 6. Create index Lambda
        dependencies_layer = _lambda.LayerVersion(
            self, "ProvisioningDependenciesLayer",
            code=_lambda.Code.from_asset(layer_code_path),
            compatible_runtimes=[_lambda.Runtime.PYTHON_3_11],
            compatible_architectures=[_lambda.Architecture.ARM_64],
            description="Dependencies layer for index provisioning (pinecone_provisioning, requests, pydantic)"
        )

        environment = vector_store.lambda_environment()
        environment.update({
            "PINECONE_REQUEST_TIMEOUT": "30",
            "PROVISION_MAX_ATTEMPTS": "3",
            "LOG_LEVEL": "INFO"
        })

        create_index_lambda = AgentLambda(
            self, "CreatePineconeIndexLambda",
            code_path=function_code_path,
            vpc=vpc,
            environment=environment,
            layers=[dependencies_layer]
        )

        pinecone_secret.grant_read(create_index_lambda.function)

        # 7. Custom resource so the stack waits for the index
        pinecone_index = None
        if api_key_secret_arn:
            provider = cr.Provider(
                self, "CreatePineconeIndexProvider",
                on_event_handler=create_index_lambda.function
            )

            pinecone_index = CustomResource(
                self, "PineconeIndex",
                service_token=provider.service_token,
                properties={
                    "IndexName": vector_store.index_name,
                    "Environment": vector_store.environment
                }
            )

        # 8. Outputs
        CfnOutput(self, "ChatbotTableName", value=chatbot_table.table_name)
        CfnOutput(self, "AgentTableName", value=agent_table.table_name)
        CfnOutput(self, "AgentRoleArn", value=agent_role.role_arn)
        CfnOutput(self, "KnowledgeBaseRoleArn", value=knowledge_base_role.role_arn)
        CfnOutput(self, "VpcId", value=vpc.vpc_id)
        CfnOutput(self, "DocumentBucketName", value=document_bucket.bucket_name)

        for name, value in vector_store.descriptor.outputs().items():
            CfnOutput(self, name, value=value)

        if pinecone_index is not None:
            CfnOutput(
                self, "PineconeIndexStatus",
                value=pinecone_index.get_att_string("PineconeIndexStatus"),
                description="Created on first deploy, AlreadyExists afterwards"
            )

        CfnOutput(
            self, "CreateIndexFunctionName",
            value=create_index_lambda.function.function_name,
            description="Lambda function name"
        )

        self.vector_store = vector_store
        self.create_index_function = create_index_lambda.function
